from auth import AuthResult, authorize, issue_session_token, read_session_token
from config import get_settings


def test_authorize_requires_matching_identity() -> None:
    assert authorize(None, "abc") is AuthResult.unauthenticated
    assert authorize("", "abc") is AuthResult.unauthenticated
    assert authorize("abc", "def") is AuthResult.forbidden
    assert authorize("abc", "abc") is AuthResult.authorized


def test_session_token_round_trip() -> None:
    token = issue_session_token("0123456789abcdef0123456789abcdef")
    assert read_session_token(token) == "0123456789abcdef0123456789abcdef"


def test_tampered_token_is_no_session() -> None:
    token = issue_session_token("abc")
    assert read_session_token(token + "x") is None
    assert read_session_token("garbage") is None


def test_expired_token_is_no_session(monkeypatch) -> None:
    token = issue_session_token("abc")
    monkeypatch.setattr(get_settings(), "session_max_age_secs", -1)
    assert read_session_token(token) is None
