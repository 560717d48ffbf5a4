"""Platform fee split for session payments.

Amounts are integer fils; the fee is rounded to the nearest fil and the
community receives the remainder.
"""

from decimal import ROUND_HALF_UP, Decimal

from padel.core.config import settings


def calculate_platform_fee(amount_fils: int, fee_percent: float | None = None) -> int:
    percent = Decimal(str(settings.platform_fee_percent if fee_percent is None else fee_percent))
    fee = (Decimal(amount_fils) * percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(fee)


def split_payment(amount_fils: int, fee_percent: float | None = None) -> tuple[int, int]:
    """Return (platform_fee_fils, net_amount_fils) for a gross amount."""
    fee = calculate_platform_fee(amount_fils, fee_percent)
    return fee, amount_fils - fee
