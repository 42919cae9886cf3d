"""Unit tests for certkeeper.services.auth -- login, tokens, logout."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from certkeeper.access.roles import VIEWER
from certkeeper.app.errors import UNAUTHORIZED, CertkeeperProblem
from certkeeper.auth import LoginRateLimiter, TokenBlacklist, create_token, hash_password
from certkeeper.models.user import User
from certkeeper.services.auth import AuthService

_SECRET = "test-secret-0123456789abcdef"

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _settings(**overrides):
    values = {
        "token_secret": _SECRET,
        "token_expiry_seconds": 3600,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _user(password="correct horse", *, active=True, role=VIEWER):
    return User(
        id=uuid4(),
        username="alice",
        role=role,
        active=active,
        password_hash=hash_password(password),
    )


def _make_service(user_repo=None, blacklist=None, limiter=None, settings=None):
    return AuthService(
        user_repo or MagicMock(),
        settings or _settings(),
        blacklist or TokenBlacklist(),
        limiter or LoginRateLimiter(max_attempts=3),
    )


# ---------------------------------------------------------------------------
# authenticate
# ---------------------------------------------------------------------------


@patch("certkeeper.services.auth.security_events")
class TestAuthenticate:
    def test_success(self, mock_se):
        user = _user()
        repo = MagicMock()
        repo.find_by_username.return_value = user
        found, token = _make_service(user_repo=repo).authenticate(
            "alice", "correct horse", "10.0.0.1",
        )
        assert found is user
        assert token
        repo.update_last_login.assert_called_once_with(user.id)
        mock_se.login_succeeded.assert_called_once_with("alice", "10.0.0.1")

    def test_wrong_password(self, mock_se):
        repo = MagicMock()
        repo.find_by_username.return_value = _user()
        with pytest.raises(CertkeeperProblem) as exc_info:
            _make_service(user_repo=repo).authenticate("alice", "nope", "10.0.0.1")
        assert exc_info.value.status == 401
        assert exc_info.value.error_type == UNAUTHORIZED
        mock_se.login_failed.assert_called_once()

    def test_unknown_user(self, mock_se):
        repo = MagicMock()
        repo.find_by_username.return_value = None
        with pytest.raises(CertkeeperProblem) as exc_info:
            _make_service(user_repo=repo).authenticate("ghost", "x", "10.0.0.1")
        assert exc_info.value.status == 401

    def test_disabled_account(self, mock_se):
        repo = MagicMock()
        repo.find_by_username.return_value = _user(active=False)
        with pytest.raises(CertkeeperProblem) as exc_info:
            _make_service(user_repo=repo).authenticate("alice", "correct horse", "ip")
        assert "disabled" in exc_info.value.detail
        repo.update_last_login.assert_not_called()

    def test_lockout_after_repeated_failures(self, mock_se):
        repo = MagicMock()
        repo.find_by_username.return_value = _user()
        svc = _make_service(user_repo=repo)
        with patch("certkeeper.auth.tokens.security_events"):
            for _ in range(3):
                with pytest.raises(CertkeeperProblem):
                    svc.authenticate("alice", "nope", "10.0.0.1")
        with pytest.raises(CertkeeperProblem) as exc_info:
            svc.authenticate("alice", "correct horse", "10.0.0.1")
        assert exc_info.value.status == 429
        # Another address is not affected
        svc.authenticate("alice", "correct horse", "10.0.0.2")


# ---------------------------------------------------------------------------
# resolve_token / logout
# ---------------------------------------------------------------------------


class TestResolveToken:
    def test_valid_token(self):
        user = _user()
        repo = MagicMock()
        repo.find_by_id.return_value = user
        token = create_token(user, _SECRET)
        assert _make_service(user_repo=repo).resolve_token(token) is user
        repo.find_by_id.assert_called_once_with(user.id)

    def test_revoked_token(self):
        user = _user()
        repo = MagicMock()
        repo.find_by_id.return_value = user
        svc = _make_service(user_repo=repo)
        token = create_token(user, _SECRET)
        svc.logout(token)
        with pytest.raises(CertkeeperProblem) as exc_info:
            svc.resolve_token(token)
        assert exc_info.value.extra_headers == {"WWW-Authenticate": "Bearer"}

    def test_invalid_token(self):
        with pytest.raises(CertkeeperProblem) as exc_info:
            _make_service().resolve_token("garbage")
        assert exc_info.value.status == 401

    def test_expired_token(self):
        token = create_token(_user(), _SECRET)
        svc = _make_service(settings=_settings(token_expiry_seconds=-1))
        with pytest.raises(CertkeeperProblem) as exc_info:
            svc.resolve_token(token)
        assert "expired" in exc_info.value.detail

    def test_malformed_payload(self):
        from itsdangerous import URLSafeTimedSerializer

        token = URLSafeTimedSerializer(_SECRET, salt="certkeeper.auth").dumps({"x": 1})
        with pytest.raises(CertkeeperProblem) as exc_info:
            _make_service().resolve_token(token)
        assert "Malformed" in exc_info.value.detail

    def test_disabled_user(self):
        user = _user(active=False)
        repo = MagicMock()
        repo.find_by_id.return_value = user
        with pytest.raises(CertkeeperProblem) as exc_info:
            _make_service(user_repo=repo).resolve_token(create_token(user, _SECRET))
        assert exc_info.value.status == 401

    def test_logout_uses_token_lifetime(self):
        blacklist = MagicMock()
        _make_service(blacklist=blacklist).logout("a.b.c")
        blacklist.revoke_token.assert_called_once_with("a.b.c", 3600)

