"""Shared test fixtures.

Tests run against a throwaway SQLite database (point PC_DATABASE_URL at
Postgres to run them there instead). OTP dev mode is on and APNs is not
configured, so nothing leaves the process unless a test patches it in.
"""

import itertools
import os

os.environ.setdefault("PC_DATABASE_URL", "sqlite+aiosqlite:///./padel_test.db")
os.environ["PC_OTP_DEV_MODE"] = "true"
os.environ["PC_APNS_KEY_PATH"] = ""
os.environ["PC_STRIPE_PUBLISHABLE_KEY"] = "pk_test_padel"

from datetime import timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from padel.core.auth import create_access_token, hash_password  # noqa: E402
from padel.core.database import async_session_factory, engine  # noqa: E402
from padel.main import app  # noqa: E402
from padel.models import Base, Community, CommunityMember, Session, User, UserRole  # noqa: E402
from padel.services.bookings import record_paid_booking  # noqa: E402
from padel.services.roles import assign_role  # noqa: E402
from padel.utils.datetime_utils import utcnow  # noqa: E402

_sequence = itertools.count(1)


@pytest.fixture(autouse=True)
async def _reset_database():
    """Every test starts from empty tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers():
    """Bearer headers for a user acting as ``role``."""

    def _headers(user: User, role: UserRole = UserRole.MEMBER) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(user.id), role=role)}"}

    return _headers


async def _persist(obj):
    async with async_session_factory() as db:
        db.add(obj)
        await db.commit()
    return obj


@pytest.fixture
def fetch():
    """Load a fresh copy of a row, bypassing any test-side identity map."""

    async def _fetch(model, pk):
        async with async_session_factory() as db:
            return await db.get(model, pk)

    return _fetch


@pytest.fixture
def make_user():
    async def _make_user(password: str | None = None, **overrides) -> User:
        n = next(_sequence)
        fields = {
            "email": f"player{n}@example.com",
            "phone": f"+97150000{n:04d}",
            "name": f"Player {n}",
            "otp_verified": True,
        }
        fields.update(overrides)
        if password is not None:
            fields["hashed_password"] = hash_password(password)
        return await _persist(User(**fields))

    return _make_user


@pytest.fixture
def make_community():
    async def _make_community(manager: User | None = None, **overrides) -> Community:
        n = next(_sequence)
        fields = {"name": f"Community {n}", "location": "Dubai Marina", "visibility": True}
        fields.update(overrides)
        return await _persist(Community(manager_id=manager.id if manager else None, **fields))

    return _make_community


@pytest.fixture
def make_session():
    async def _make_session(community: Community, **overrides) -> Session:
        fields = {
            "title": "Evening Americano",
            "scheduled_at": utcnow() + timedelta(days=3),
            "duration_minutes": 90,
            "location": "Court 1",
            "price_fils": 5000,
            "max_players": 4,
            "free_cancellation_hours": 24,
            "allow_conditional_cancellation": True,
        }
        fields.update(overrides)
        return await _persist(Session(community_id=community.id, **fields))

    return _make_session


@pytest.fixture
def add_member():
    async def _add_member(community: Community, user: User) -> CommunityMember:
        return await _persist(CommunityMember(community_id=community.id, user_id=user.id))

    return _add_member


@pytest.fixture
def grant_role():
    async def _grant_role(user: User, role: UserRole, community: Community | None = None):
        async with async_session_factory() as db:
            assignment = await assign_role(db, user.id, role, community.id if community else None)
            await db.commit()
        return assignment

    return _grant_role


@pytest.fixture
def book_seat():
    """A paid, live booking holding one seat, as the payment flow would leave it."""

    async def _book_seat(session: Session, user: User, payment_intent_id: str | None = None):
        async with async_session_factory() as db:
            db_session = await db.get(Session, session.id)
            db_session.booked_count += 1
            booking = await record_paid_booking(
                db, user.id, db_session, payment_intent_id or f"pi_{next(_sequence)}", db_session.price_fils
            )
            await db.commit()
        return booking

    return _book_seat


@pytest.fixture
def stripe_intent():
    """A stand-in for a stripe.PaymentIntent."""

    def _intent(session_id: int, user_id: int, status: str = "succeeded", amount: int = 5000, pi_id: str = "pi_test"):
        return SimpleNamespace(
            id=pi_id,
            status=status,
            amount=amount,
            client_secret=f"{pi_id}_secret",
            metadata={"session_id": str(session_id), "user_id": str(user_id)},
        )

    return _intent
