import pytest
from jose import jwt

from toothchart.core.security import InvalidTokenError, create_access_token, user_id_from_token
from toothchart.models.user import Role
from toothchart.services.users import LoginOutcome, add_staff_member, check_login, seed_initial_admin


@pytest.fixture
def hygienist(db_session):
    return add_staff_member(
        db_session,
        email=" Hy.Gienist@SmileDental.org ",
        password="correct-horse-battery",
        full_name="Hy Gienist",
        role=Role.hygienist,
    )


def test_token_round_trip():
    assert user_id_from_token(create_access_token(42, role="dentist")) == 42


def test_token_signed_with_another_key_is_rejected():
    token = jwt.encode({"sub": "42"}, "some-other-signing-key", algorithm="HS256")
    with pytest.raises(InvalidTokenError):
        user_id_from_token(token)


def test_check_login(db_session, hygienist):
    assert check_login(db_session, "hy.gienist@smiledental.org", "correct-horse-battery") == (
        LoginOutcome.ok,
        hygienist,
    )
    assert check_login(db_session, "hy.gienist@smiledental.org", "wrong")[0] is LoginOutcome.bad_password
    assert check_login(db_session, "nobody@smiledental.org", "x") == (LoginOutcome.unknown, None)


def test_seed_initial_admin_only_on_empty_table(db_session):
    assert seed_initial_admin(db_session, email="owner@smiledental.org", password="long-enough-password") is True
    assert seed_initial_admin(db_session, email="other@smiledental.org", password="long-enough-password") is False


def test_login_endpoint(anonymous_client, hygienist):
    response = anonymous_client.post(
        "/auth/login",
        json={"email": "hy.gienist@smiledental.org", "password": "correct-horse-battery"},
    )
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert user_id_from_token(token) == hygienist.id

    response = anonymous_client.post(
        "/auth/login",
        json={"email": "hy.gienist@smiledental.org", "password": "nope"},
    )
    assert response.status_code == 401


def test_disabled_account_gets_403(anonymous_client, db_session, hygienist):
    hygienist.is_active = False
    db_session.commit()
    response = anonymous_client.post(
        "/auth/login",
        json={"email": "hy.gienist@smiledental.org", "password": "correct-horse-battery"},
    )
    assert response.status_code == 403
