from datetime import timedelta

import pytest

from keepintouch.core.clock import utcnow
from keepintouch.core.exceptions import AuthenticationError
from keepintouch.core.security import create_refresh_token
from keepintouch.models.security import RefreshToken
from keepintouch.services.refresh_token_service import refresh_token_service


def _issue(db, user_id, device_info=None):
    raw = create_refresh_token(user_id)
    record = refresh_token_service.store_refresh_token(db, user_id, raw, device_info)
    return raw, record


def test_store_hashes_token_and_sets_expiry(db, make_user):
    user = make_user()
    raw, record = _issue(db, user.id, "laptop")

    assert record.token_hash != raw
    assert record.device_info == "laptop"
    assert record.is_revoked is False
    lifetime = record.expires_at - utcnow()
    assert timedelta(days=6, hours=23) < lifetime <= timedelta(days=7)


def test_store_truncates_device_info(db, make_user):
    user = make_user()
    _, record = _issue(db, user.id, "x" * 400)
    assert len(record.device_info) == 255


def test_validate_finds_matching_record(db, make_user):
    user = make_user()
    _issue(db, user.id)
    raw, record = _issue(db, user.id)

    user_id, found = refresh_token_service.validate_refresh_token(db, raw)
    assert user_id == user.id
    assert found.id == record.id


def test_validate_requires_token(db):
    with pytest.raises(AuthenticationError) as exc_info:
        refresh_token_service.validate_refresh_token(db, "")
    assert exc_info.value.message == "Refresh token is required"


def test_validate_rejects_unknown_revoked_and_expired(db, make_user):
    user = make_user()
    unknown = create_refresh_token(user.id)
    revoked_raw, revoked = _issue(db, user.id)
    expired_raw, expired = _issue(db, user.id)

    refresh_token_service.revoke_record(db, revoked)
    expired.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    for raw in (unknown, revoked_raw, expired_raw):
        with pytest.raises(AuthenticationError) as exc_info:
            refresh_token_service.validate_refresh_token(db, raw)
        assert exc_info.value.message == "Invalid or expired refresh token"


def test_concurrent_validation_of_same_token_both_succeed(db, make_user):
    # Two requests scanning before either revokes both see an active record
    user = make_user()
    raw, record = _issue(db, user.id)

    _, first = refresh_token_service.validate_refresh_token(db, raw)
    _, second = refresh_token_service.validate_refresh_token(db, raw)
    assert first.id == second.id == record.id

    refresh_token_service.revoke_record(db, first)
    with pytest.raises(AuthenticationError):
        refresh_token_service.validate_refresh_token(db, raw)


def test_revoke_refresh_token_never_raises(db, make_user):
    user = make_user()
    raw, _ = _issue(db, user.id)

    assert refresh_token_service.revoke_refresh_token(db, raw) is True
    assert refresh_token_service.revoke_refresh_token(db, raw) is False
    assert refresh_token_service.revoke_refresh_token(db, "garbage") is False


def test_revoke_all_and_revoke_others(db, make_user):
    user = make_user()
    other = make_user("bob")
    _issue(db, user.id)
    _, keep = _issue(db, user.id)
    _issue(db, user.id)
    _issue(db, other.id)

    assert refresh_token_service.revoke_other_user_tokens(db, user.id, keep.id) == 2
    assert [r.id for r in refresh_token_service.get_user_active_tokens(db, user.id)] == [keep.id]

    assert refresh_token_service.revoke_all_user_tokens(db, user.id) == 1
    assert refresh_token_service.revoke_all_user_tokens(db, user.id) == 0
    assert len(refresh_token_service.get_user_active_tokens(db, other.id)) == 1


def test_revoke_user_token_is_scoped_to_owner(db, make_user):
    user = make_user()
    other = make_user("bob")
    _, record = _issue(db, user.id)

    assert refresh_token_service.revoke_user_token(db, other.id, record.id) == 0
    assert refresh_token_service.revoke_user_token(db, user.id, 9999) == 0
    assert refresh_token_service.revoke_user_token(db, user.id, record.id) == 1
    assert refresh_token_service.revoke_user_token(db, user.id, record.id) == 0


def test_active_tokens_newest_first(db, make_user):
    user = make_user()
    _, first = _issue(db, user.id, "one")
    _, second = _issue(db, user.id, "two")
    _, third = _issue(db, user.id, "three")
    refresh_token_service.revoke_record(db, second)

    active = refresh_token_service.get_user_active_tokens(db, user.id)
    assert [r.id for r in active] == [third.id, first.id]


def test_cleanup_and_stats(db, make_user):
    user = make_user()
    _issue(db, user.id)
    _, revoked = _issue(db, user.id)
    _, expired = _issue(db, user.id)
    refresh_token_service.revoke_record(db, revoked)
    expired.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    stats = refresh_token_service.get_token_stats(db)
    assert stats == {"total": 3, "active": 1, "expired": 1, "revoked": 1}

    assert refresh_token_service.cleanup_expired_tokens(db) == 2
    assert db.query(RefreshToken).count() == 1
    assert refresh_token_service.get_token_stats(db)["total"] == 1
