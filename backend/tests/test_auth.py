"""
crudkit — Authentication Collaborator Tests
=============================================

What we test:
    ✅ Principal built from the first present id claim
    ✅ Expired, tampered and id-less tokens rejected with UnauthorizedError
    ✅ optional_auth stays anonymous instead of failing
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import jwt
import pytest

from crudkit.auth import decode_token, get_principal, issue_token, optional_auth, require_auth
from crudkit.exceptions import UnauthorizedError

SECRET = "unit-test-secret-0123456789abcdef-xyz"


def in_one_hour():
    return datetime.now(timezone.utc) + timedelta(hours=1)


def make_request(authorization=None):
    request = MagicMock()
    request.headers = {"Authorization": authorization} if authorization else {}
    request.state = SimpleNamespace()
    return request


class TestDecodeToken:

    def test_valid_token(self):
        token = issue_token("user-1", email="a@example.com", role="admin", secret=SECRET)
        principal = decode_token(token, secret=SECRET)
        assert principal.id == "user-1"
        assert principal.email == "a@example.com"
        assert principal.role == "admin"

    def test_legacy_id_claim(self):
        token = jwt.encode({"_id": "legacy-7", "exp": in_one_hour()}, SECRET, algorithm="HS256")
        assert decode_token(token, secret=SECRET).id == "legacy-7"

    def test_token_without_id_claim(self):
        token = jwt.encode({"email": "a@example.com", "exp": in_one_hour()}, SECRET, algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            decode_token(token, secret=SECRET)

    def test_principal_id_longer_than_audit_columns(self):
        email_sized = "x" * 255
        assert decode_token(issue_token(email_sized, secret=SECRET), secret=SECRET).id == email_sized
        with pytest.raises(UnauthorizedError):
            decode_token(issue_token(email_sized + "x", secret=SECRET), secret=SECRET)

    def test_expired_token(self):
        token = issue_token("user-1", secret=SECRET, expires_in=timedelta(seconds=-30))
        with pytest.raises(UnauthorizedError) as exc:
            decode_token(token, secret=SECRET)
        assert exc.value.message == "Invalid or expired token"
        assert exc.value.status_code == 401

    def test_wrong_secret(self):
        token = issue_token("user-1", secret=SECRET)
        with pytest.raises(UnauthorizedError):
            decode_token(token, secret=SECRET + "-rotated")

    def test_missing_secret(self):
        token = issue_token("user-1", secret=SECRET)
        with pytest.raises(UnauthorizedError):
            decode_token(token, secret="")


class TestDependencies:

    @pytest.mark.asyncio
    async def test_require_auth_attaches_principal(self, alice):
        request = make_request(f"Bearer {issue_token(alice.id)}")
        principal = await require_auth(request)
        assert principal.id == alice.id
        assert get_principal(request) == principal

    @pytest.mark.asyncio
    async def test_require_auth_without_header(self):
        with pytest.raises(UnauthorizedError) as exc:
            await require_auth(make_request())
        assert exc.value.message == "Missing Bearer token"

    @pytest.mark.asyncio
    async def test_require_auth_with_other_scheme(self):
        with pytest.raises(UnauthorizedError):
            await require_auth(make_request("Basic dXNlcjpwYXNz"))

    @pytest.mark.asyncio
    async def test_optional_auth_with_bad_token(self):
        request = make_request("Bearer not-a-jwt")
        assert await optional_auth(request) is None
        assert get_principal(request) is None

    @pytest.mark.asyncio
    async def test_optional_auth_with_good_token(self, bob):
        request = make_request(f"Bearer {issue_token(bob.id)}")
        assert (await optional_auth(request)).id == bob.id

    def test_get_principal_defaults_to_none(self):
        assert get_principal(make_request()) is None
