"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import patch

from wgportal.core.auth import hash_api_key
from wgportal.core.database import Base, get_db
from wgportal.main import app
from wgportal.models import APIKey, Peer, PeerStatus, RoleDefinition, User, UserStatus
from wgportal.services import crypto_service
from wgportal.services.user_service import ensure_roles_seeded

# File-based SQLite for testing (more reliable than in-memory across sessions)
TEST_DATABASE_URL = "sqlite:///./test_wgportal.db"

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4

SAMPLE_CONFIG = """[Interface]
PrivateKey = cGVlci1wcml2YXRlLWtleS1mb3ItdGVzdHMtb25seQ==
Address = {address}
DNS = 10.0.0.1

[Peer]
PublicKey = c2VydmVyLXB1YmxpYy1rZXktZm9yLXRlc3RzLW9ubHk=
Endpoint = vpn.example.com:51820
AllowedIPs = 0.0.0.0/0
"""

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create all tables once per session and drop them afterwards."""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def clean_tables():
    """Delete all rows after each test so tests stay independent."""
    yield
    with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function", autouse=True)
def disable_api_key():
    """Disable API key authentication unless a test opts in."""
    with patch("wgportal.core.config.settings.API_KEY", None):
        yield


@pytest.fixture(scope="function", autouse=True)
def encryption_key():
    """Configure a known encryption key for every test."""
    with patch("wgportal.core.config.settings.ENCRYPTION_KEY", TEST_ENCRYPTION_KEY):
        yield TEST_ENCRYPTION_KEY


@pytest.fixture(scope="function", autouse=True)
def reset_domain_cache():
    """The accepted-domain cache lives on the app and outlives a test."""
    app.state.domain_cache.invalidate()
    yield
    app.state.domain_cache.invalidate()


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client():
    """
    Test client with the database dependency overridden.

    API key authentication is disabled, so every request acts as the system admin.
    """
    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_with_auth():
    """
    Test client with API key authentication enabled.

    The static key "test-key" acts as admin; user keys come from make_api_key.
    """
    app.dependency_overrides[get_db] = _override_get_db
    with patch("wgportal.core.config.settings.API_KEY", "test-key"):
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def db_session():
    """Database session for tests that need direct DB access."""
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


def make_user(db, email="alice@example.com", roles=("user",), peer_limit=3, status=UserStatus.ACTIVE):
    ensure_roles_seeded(db)
    user = User(email=email, peer_limit=peer_limit, status=status)
    user.roles = db.query(RoleDefinition).filter(RoleDefinition.name.in_(list(roles))).all()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_api_key(db, user, raw_key=None):
    """Store a hashed key for user and return the raw key."""
    raw_key = raw_key or f"key-{user.email}"
    db.add(APIKey(key_hash=hash_api_key(raw_key), label=user.email, user_id=user.id, is_active=True))
    db.commit()
    return raw_key


_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_peer(db, address, status=PeerStatus.AVAILABLE, owner=None, order=0, friendly_name=None):
    """Create a peer; order controls imported_at so FIFO is deterministic."""
    peer = Peer(
        public_key=address,
        status=status,
        owner_id=owner.id if owner is not None else None,
        friendly_name=friendly_name,
        config_ciphertext=crypto_service.encrypt(SAMPLE_CONFIG.format(address=address), TEST_ENCRYPTION_KEY),
        imported_at=_BASE_TIME + timedelta(minutes=order),
        claimed_at=_BASE_TIME + timedelta(hours=1, minutes=order) if owner is not None else None,
    )
    db.add(peer)
    db.commit()
    db.refresh(peer)
    return peer


@pytest.fixture
def user_factory(db_session):
    return lambda **kwargs: make_user(db_session, **kwargs)


@pytest.fixture
def peer_factory(db_session):
    return lambda address, **kwargs: make_peer(db_session, address, **kwargs)


@pytest.fixture
def api_key_factory(db_session):
    return lambda user, raw_key=None: make_api_key(db_session, user, raw_key)
