import os
from datetime import datetime, timedelta, timezone

import pytest

from nuvyra_admin.auth import (
    AuthError,
    get_current_user,
    hash_password,
    post_login_target,
    resolve_gate,
    sign_in,
    sign_out,
    verify_password,
)
from nuvyra_admin.models import AdminSession

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]


@pytest.mark.parametrize(
    "path,authenticated,expected",
    [
        ("/admin/products", False, "/login?redirect=/admin/products"),
        ("/admin/products/edit/abc", False, "/login?redirect=/admin/products/edit/abc"),
        ("/admin", False, "/login?redirect=/admin"),
        ("/admin/products", True, None),
        ("/login", True, "/admin/products"),
        ("/login", False, None),
        ("/", True, "/admin/products"),
        ("/", False, "/login"),
        ("/docs", False, None),
        ("/administrator", False, None),
    ],
)
def test_resolve_gate(path, authenticated, expected):
    assert resolve_gate(path, authenticated) == expected


def test_post_login_target_only_follows_admin_paths():
    assert post_login_target("/admin/settings") == "/admin/settings"
    assert post_login_target("https://evil.example.com/admin") == "/admin/products"
    assert post_login_target(None) == "/admin/products"


def test_password_hash_round_trip():
    encoded = hash_password("hunter2")
    assert encoded.startswith("pbkdf2_sha256$")
    assert verify_password("hunter2", encoded)
    assert not verify_password("hunter3", encoded)
    assert not verify_password("hunter2", "garbage")


def test_sign_in_and_out(db):
    token = sign_in(db, ADMIN_EMAIL.upper(), ADMIN_PASSWORD).token

    user = get_current_user(db, token)
    assert user is not None
    assert user.email == ADMIN_EMAIL

    sign_out(db, token)
    assert get_current_user(db, token) is None
    assert db.query(AdminSession).count() == 0


def test_sign_in_rejects_bad_password(db):
    with pytest.raises(AuthError):
        sign_in(db, ADMIN_EMAIL, "wrong")
    with pytest.raises(AuthError):
        sign_in(db, "nobody@nuvyra.test", ADMIN_PASSWORD)


def test_expired_session_is_rejected_and_removed(db):
    session = sign_in(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    session.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    assert get_current_user(db, session.token) is None
    assert db.query(AdminSession).count() == 0


def test_sign_in_purges_expired_sessions(db):
    stale = sign_in(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    stale.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()
    stale_token = stale.token

    fresh_token = sign_in(db, ADMIN_EMAIL, ADMIN_PASSWORD).token

    db.expire_all()
    assert [s.token for s in db.query(AdminSession).all()] == [fresh_token]
    assert stale_token != fresh_token


def test_unknown_token_is_anonymous(db):
    assert get_current_user(db, None) is None
    assert get_current_user(db, "not-a-token") is None
