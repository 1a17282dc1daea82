import time
import pytest
from core.config import settings
from core.security import Identity, issue_token, verify_token


def test_round_trip_identity():
    token = issue_token("alice", "student")
    assert verify_token(token) == Identity(user_id="alice", role="student")


def test_user_id_may_contain_colons():
    token = issue_token("google-oauth2:1234", "teacher")
    assert verify_token(token) == Identity(user_id="google-oauth2:1234", role="teacher")


def test_tampered_role_rejected():
    token = issue_token("alice", "student")
    forged = token.replace(":student:", ":teacher:", 1)
    assert verify_token(forged) is None


def test_expired_token_rejected():
    issued = int(time.time()) - settings.TOKEN_TTL_SECONDS - 5
    assert verify_token(issue_token("alice", "student", issued_at=issued)) is None


@pytest.mark.parametrize("token", [None, "", "garbage", "alice:student:notanumber:abc", ":student:1:abc"])
def test_malformed_tokens(token):
    assert verify_token(token) is None


def test_unknown_role_cannot_be_issued():
    with pytest.raises(ValueError):
        issue_token("alice", "admin")
