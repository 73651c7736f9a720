"""
Tests for the peer directory and allocation engine.
"""
import logging
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from wgportal.core.auth import AuthContext
from wgportal.core.exceptions import (
    ConcurrentClaimConflict,
    ConfigError,
    DuplicateName,
    Forbidden,
    LimitExceeded,
    NoAvailable,
    NotFound,
    PeerNotAvailable,
    ValidationError,
)
from wgportal.models import AuditEvent, AuditEventType, Peer, PeerStatus, UserStatus
from wgportal.services import peer_service
from wgportal.services.audit_service import AuditTrail
from wgportal.services.peer_service import PeerAllocationEngine


def ctx_for(user, roles=("user",)):
    return AuthContext(source="db", roles=list(roles), user_id=user.id)


def audit_events(db, event_type=None):
    query = db.query(AuditEvent)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    return query.order_by(AuditEvent.id).all()


def test_claim_respects_limit_of_one(db_session, user_factory, peer_factory):
    user = user_factory(peer_limit=1)
    peer_factory("10.8.0.2/32", order=0)
    peer_factory("10.8.0.3/32", order=1)
    engine = PeerAllocationEngine(db_session)

    claimed = engine.claim_next(ctx_for(user))
    assert claimed.status == PeerStatus.ACTIVE
    assert claimed.owner_id == user.id
    assert claimed.claimed_at is not None

    with pytest.raises(LimitExceeded):
        engine.claim_next(ctx_for(user))

    assert peer_service.count_active_for_owner(db_session, user.id) == 1
    remaining = db_session.query(Peer).filter(Peer.status == PeerStatus.AVAILABLE).count()
    assert remaining == 1


def test_claim_is_fifo_by_import_time(db_session, user_factory, peer_factory):
    user = user_factory()
    peer_factory("10.8.0.4/32", order=2)
    oldest = peer_factory("10.8.0.2/32", order=0)
    peer_factory("10.8.0.3/32", order=1)

    claimed = PeerAllocationEngine(db_session).claim_next(ctx_for(user))

    assert claimed.id == oldest.id


def test_claim_with_empty_pool_raises_no_available(db_session, user_factory):
    user = user_factory()

    with pytest.raises(NoAvailable):
        PeerAllocationEngine(db_session).claim_next(ctx_for(user))


def test_claimed_peer_is_not_claimed_twice(db_session, user_factory, peer_factory):
    alice = user_factory(email="alice@example.com")
    bob = user_factory(email="bob@example.com")
    peer_factory("10.8.0.2/32", order=0)
    engine = PeerAllocationEngine(db_session)

    engine.claim_next(ctx_for(alice))
    with pytest.raises(NoAvailable):
        engine.claim_next(ctx_for(bob))


def test_claim_records_audit_event(db_session, user_factory, peer_factory):
    user = user_factory()
    peer_factory("10.8.0.2/32")

    claimed = PeerAllocationEngine(db_session).claim_next(ctx_for(user))

    events = audit_events(db_session, AuditEventType.PEER_CLAIM)
    assert len(events) == 1
    assert events[0].actor_id == user.id
    assert events[0].subject_table == "peers"
    assert events[0].subject_id == claimed.id
    assert events[0].event_metadata == {"peer_id": claimed.id, "public_key": "10.8.0.2/32"}


def test_claim_requires_active_user(db_session, user_factory, peer_factory):
    user = user_factory(status=UserStatus.INACTIVE)
    peer_factory("10.8.0.2/32")

    with pytest.raises(Forbidden):
        PeerAllocationEngine(db_session).claim_next(ctx_for(user))


def test_static_admin_cannot_claim_without_user(db_session, peer_factory):
    peer_factory("10.8.0.2/32")

    with pytest.raises(Forbidden):
        PeerAllocationEngine(db_session).claim_next(AuthContext.system())


def test_claim_moves_on_after_losing_a_race(db_session, user_factory, peer_factory):
    alice = user_factory(email="alice@example.com")
    rival = user_factory(email="rival@example.com")
    first = peer_factory("10.8.0.2/32", order=0)
    second = peer_factory("10.8.0.3/32", order=1)

    engine = PeerAllocationEngine(db_session)
    original = engine._next_available_candidate
    stolen = []

    def racing_candidate(exclude):
        candidate = original(exclude)
        if candidate and not stolen:
            # Another request takes the row between our read and our write
            db_session.query(Peer).filter(Peer.id == candidate).update(
                {Peer.status: PeerStatus.ACTIVE, Peer.owner_id: rival.id},
                synchronize_session=False,
            )
            stolen.append(candidate)
        return candidate

    engine._next_available_candidate = racing_candidate
    claimed = engine.claim_next(ctx_for(alice))

    assert stolen == [first.id]
    assert claimed.id == second.id
    assert claimed.owner_id == alice.id


def test_claim_gives_up_after_max_attempts(db_session, user_factory, peer_factory):
    alice = user_factory(email="alice@example.com")
    rival = user_factory(email="rival@example.com")
    for i in range(3):
        peer_factory(f"10.8.0.{i + 2}/32", order=i)

    engine = PeerAllocationEngine(db_session, max_claim_attempts=2)
    original = engine._next_available_candidate

    def always_lose(exclude):
        candidate = original(exclude)
        if candidate:
            db_session.query(Peer).filter(Peer.id == candidate).update(
                {Peer.status: PeerStatus.ACTIVE, Peer.owner_id: rival.id},
                synchronize_session=False,
            )
        return candidate

    engine._next_available_candidate = always_lose
    with pytest.raises(ConcurrentClaimConflict):
        engine.claim_next(ctx_for(alice))

    assert peer_service.count_active_for_owner(db_session, alice.id) == 0


def test_audit_failure_does_not_undo_claim(db_session, user_factory, peer_factory, caplog):
    class BrokenSession:
        def add(self, obj):
            pass

        def commit(self):
            raise SQLAlchemyError("audit table unavailable")

        def rollback(self):
            pass

        def refresh(self, obj):
            pass

    user = user_factory()
    peer_factory("10.8.0.2/32")
    engine = PeerAllocationEngine(db_session, audit=AuditTrail(BrokenSession()))

    with caplog.at_level(logging.ERROR, logger="wgportal.audit"):
        claimed = engine.claim_next(ctx_for(user))

    assert claimed.status == PeerStatus.ACTIVE
    db_session.expire_all()
    assert db_session.get(Peer, claimed.id).owner_id == user.id
    assert audit_events(db_session) == []
    assert any("PEER_CLAIM" in record.getMessage() for record in caplog.records)


def test_admin_assigns_revoked_peer_to_another_user(db_session, user_factory, peer_factory):
    admin = user_factory(email="admin@example.com", roles=("user", "admin"))
    u1 = user_factory(email="u1@example.com")
    u2 = user_factory(email="u2@example.com")
    p1 = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=u1)
    engine = PeerAllocationEngine(db_session)

    engine.revoke(ctx_for(u1), p1.id)
    assigned = engine.assign(ctx_for(admin, ("user", "admin")), p1.id, u2.id)

    assert assigned.owner_id == u2.id
    assert assigned.status == PeerStatus.ACTIVE
    assert assigned.revoked_at is None

    event = audit_events(db_session, AuditEventType.PEER_ASSIGN)[-1]
    assert event.actor_id == admin.id
    assert event.event_metadata["peer_id"] == p1.id
    assert event.event_metadata["user_id"] == u2.id
    assert event.event_metadata["previous_status"] == "inactive"


def test_assign_rejects_active_peer(db_session, user_factory, peer_factory):
    u1 = user_factory(email="u1@example.com")
    u2 = user_factory(email="u2@example.com")
    p1 = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=u1)

    with pytest.raises(PeerNotAvailable):
        PeerAllocationEngine(db_session).assign(AuthContext.system(), p1.id, u2.id)


def test_assign_respects_target_limit(db_session, user_factory, peer_factory):
    target = user_factory(peer_limit=1)
    peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=target)
    free = peer_factory("10.8.0.3/32")

    with pytest.raises(LimitExceeded) as exc_info:
        PeerAllocationEngine(db_session).assign(AuthContext.system(), free.id, target.id)
    assert exc_info.value.message == "Target user has reached peer limit"


def test_assign_requires_admin(db_session, user_factory, peer_factory):
    user = user_factory()
    free = peer_factory("10.8.0.2/32")

    with pytest.raises(Forbidden):
        PeerAllocationEngine(db_session).assign(ctx_for(user), free.id, user.id)


def test_rename_rejects_invalid_name_before_storage(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user, friendly_name="laptop")

    with patch.object(db_session, "commit", side_effect=AssertionError("must not reach storage")):
        with pytest.raises(ValidationError):
            PeerAllocationEngine(db_session).rename(ctx_for(user), peer.id, "My-Config")

    db_session.expire_all()
    assert db_session.get(Peer, peer.id).friendly_name == "laptop"


def test_rename_duplicate_name_conflicts(db_session, user_factory, peer_factory):
    user = user_factory()
    peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user, friendly_name="laptop")
    other = peer_factory("10.8.0.3/32", status=PeerStatus.ACTIVE, owner=user, order=1)

    with pytest.raises(DuplicateName):
        PeerAllocationEngine(db_session).rename(ctx_for(user), other.id, "laptop")


def test_rename_sets_name(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user)

    renamed = PeerAllocationEngine(db_session).rename(ctx_for(user), peer.id, "home-router-2")

    assert renamed.friendly_name == "home-router-2"


def test_revoke_keeps_owner_and_is_idempotent(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user)
    engine = PeerAllocationEngine(db_session)

    engine.revoke(ctx_for(user), peer.id)
    engine.revoke(ctx_for(user), peer.id)

    db_session.expire_all()
    stored = db_session.get(Peer, peer.id)
    assert stored.status == PeerStatus.INACTIVE
    assert stored.owner_id == user.id
    assert stored.revoked_at is not None
    assert len(audit_events(db_session, AuditEventType.PEER_REVOKE)) == 1


def test_revoke_available_peer_is_rejected(db_session, peer_factory):
    peer = peer_factory("10.8.0.2/32")

    with pytest.raises(PeerNotAvailable):
        PeerAllocationEngine(db_session).revoke(AuthContext.system(), peer.id)


def test_users_cannot_touch_peers_of_others(db_session, user_factory, peer_factory):
    owner = user_factory(email="owner@example.com")
    intruder = user_factory(email="intruder@example.com")
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=owner)
    engine = PeerAllocationEngine(db_session)

    assert peer_service.find_by_id(db_session, ctx_for(intruder), peer.id) is None
    with pytest.raises(NotFound):
        engine.revoke(ctx_for(intruder), peer.id)
    with pytest.raises(NotFound):
        engine.download(ctx_for(intruder), peer.id)
    with pytest.raises(Forbidden):
        peer_service.list_for_owner(db_session, ctx_for(intruder), owner.id)


def test_download_decrypts_config(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user, friendly_name="laptop")

    filename, content = PeerAllocationEngine(db_session).download(ctx_for(user), peer.id)

    assert filename == "laptop.conf"
    assert "Address = 10.8.0.2/32" in content
    assert len(audit_events(db_session, AuditEventType.PEER_DOWNLOAD)) == 1


def test_download_of_unnamed_peer_uses_id_prefix(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user)

    filename, _ = PeerAllocationEngine(db_session).download(ctx_for(user), peer.id)

    assert filename == f"peer-{peer.id[:8]}.conf"


def test_owner_cannot_download_revoked_peer(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.INACTIVE, owner=user)

    with pytest.raises(PeerNotAvailable):
        PeerAllocationEngine(db_session).download(ctx_for(user), peer.id)

    _, content = PeerAllocationEngine(db_session).download(AuthContext.system(), peer.id)
    assert "10.8.0.2/32" in content


def test_download_without_key_is_config_error(db_session, user_factory, peer_factory):
    user = user_factory()
    peer = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user)

    with patch("wgportal.core.config.settings.ENCRYPTION_KEY", None):
        with pytest.raises(ConfigError):
            PeerAllocationEngine(db_session).download(ctx_for(user), peer.id)


def test_list_for_owner_orders_newest_claim_first(db_session, user_factory, peer_factory):
    user = user_factory()
    older = peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user, order=0)
    newer = peer_factory("10.8.0.3/32", status=PeerStatus.ACTIVE, owner=user, order=5)

    items, total = peer_service.list_for_owner(db_session, ctx_for(user), user.id)

    assert total == 2
    assert [p.id for p in items] == [newer.id, older.id]


def test_list_all_joins_owner_email_and_requires_admin(db_session, user_factory, peer_factory):
    user = user_factory(email="carol@example.com")
    peer_factory("10.8.0.2/32", status=PeerStatus.ACTIVE, owner=user)
    peer_factory("10.8.0.3/32", order=1)

    rows, total = peer_service.list_all(db_session, AuthContext.system())
    assert total == 2
    emails = {peer.public_key: email for peer, email in rows}
    assert emails == {"10.8.0.2/32": "carol@example.com", "10.8.0.3/32": None}

    with pytest.raises(Forbidden):
        peer_service.list_all(db_session, ctx_for(user))
