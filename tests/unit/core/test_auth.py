"""Tests for the shared-password admin session."""
from midweave.core.auth import AdminAuth


class TestAdminAuth:
    """Tests for AdminAuth."""

    def test_login_with_correct_password(self):
        auth = AdminAuth("secret")
        assert auth.login("secret") is True
        assert auth.is_authenticated

    def test_login_with_wrong_password(self):
        auth = AdminAuth("secret")
        assert auth.login("guess") is False
        assert not auth.is_authenticated

    def test_empty_configured_password_never_matches(self):
        assert AdminAuth("").login("") is False

    def test_logout_closes_session(self):
        auth = AdminAuth("secret")
        auth.login("secret")
        auth.logout()
        assert not auth.is_authenticated
