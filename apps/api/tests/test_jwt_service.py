"""
Token service invariants.

Claims round-trip, every token gets its own jti, expiry is distinguished
from every other failure, and bearer headers are parsed strictly.
"""
from datetime import timedelta

import pytest
from jose import jwt

from core.exceptions import AuthError, AuthErrorKind
from core.roles import UserRole
from core.security import (
    ALGORITHM,
    JwtService,
    TokenType,
    extract_bearer_token,
    get_jwt_service,
)

SECRET = "unit-test-secret-with-at-least-32-characters"
USER_ID = "9b2f1c9e-1d52-4b7a-9d5e-0d3f8f3b2a11"


@pytest.fixture
def service():
    return JwtService(SECRET)


def _tamper(token: str) -> str:
    # Flip the first signature character; the last one may only carry padding bits.
    header, payload, sig = token.split(".")
    first = sig[0]
    return ".".join([header, payload, ("A" if first != "A" else "B") + sig[1:]])


class TestIssueAndValidate:

    def test_access_claims_round_trip(self, service):
        token = service.create_access_token(USER_ID, "coach@example.com", UserRole.COACH)
        claims = service.validate_token(token)
        assert claims.sub == USER_ID
        assert claims.email == "coach@example.com"
        assert claims.role is UserRole.COACH
        assert claims.type is TokenType.ACCESS
        assert claims.exp - claims.iat == 15 * 60

    def test_refresh_lifetime(self, service):
        claims = service.validate_token(service.create_refresh_token(USER_ID, "a@example.com", UserRole.ATHLETE))
        assert claims.type is TokenType.REFRESH
        assert claims.exp - claims.iat == 30 * 24 * 3600

    def test_token_pair_has_distinct_jtis(self, service):
        pair = service.create_token_pair(USER_ID, "a@example.com", UserRole.ATHLETE)
        access = service.validate_token(pair.access_token)
        refresh = service.validate_token(pair.refresh_token)
        assert access.jti and refresh.jti
        assert access.jti != refresh.jti
        assert pair.expires_in == 900
        assert pair.token_type == "Bearer"

    def test_same_input_twice_gives_different_jti(self, service):
        first = service.extract_jti(service.create_access_token(USER_ID, "a@example.com", UserRole.ATHLETE))
        second = service.extract_jti(service.create_access_token(USER_ID, "a@example.com", UserRole.ATHLETE))
        assert first != second

    def test_extract_user_session(self, service):
        token = service.create_access_token(USER_ID, "admin@example.com", UserRole.ADMIN)
        session = service.extract_user_session(token)
        assert session.user_id == USER_ID
        assert session.role is UserRole.ADMIN
        assert session.jti == service.extract_jti(token)


class TestFailures:

    def test_expired_token(self, service):
        token = service.create_access_token(
            USER_ID, "a@example.com", UserRole.ATHLETE, expires_delta=timedelta(seconds=-10)
        )
        with pytest.raises(AuthError) as exc:
            service.validate_token(token)
        assert exc.value.kind is AuthErrorKind.TOKEN_EXPIRED

    def test_tampered_signature_is_invalid(self, service):
        token = _tamper(service.create_access_token(USER_ID, "a@example.com", UserRole.ATHLETE))
        with pytest.raises(AuthError) as exc:
            service.validate_token(token)
        assert exc.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_expired_and_wrong_secret_is_invalid_not_expired(self, service):
        other = JwtService("another-secret-with-at-least-32-characters!")
        token = other.create_access_token(
            USER_ID, "a@example.com", UserRole.ATHLETE, expires_delta=timedelta(seconds=-10)
        )
        with pytest.raises(AuthError) as exc:
            service.validate_token(token)
        assert exc.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_garbage_is_invalid(self, service):
        with pytest.raises(AuthError) as exc:
            service.validate_token("not.a.jwt")
        assert exc.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_missing_claims_is_invalid(self, service):
        token = jwt.encode({"sub": USER_ID, "exp": 9999999999}, SECRET, algorithm=ALGORITHM)
        with pytest.raises(AuthError) as exc:
            service.validate_token(token)
        assert exc.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_unknown_role_is_invalid(self, service):
        token = jwt.encode(
            {
                "sub": USER_ID, "email": "a@example.com", "role": "owner",
                "iat": 1, "exp": 9999999999, "jti": "x", "type": "access",
            },
            SECRET,
            algorithm=ALGORITHM,
        )
        with pytest.raises(AuthError) as exc:
            service.validate_token(token)
        assert exc.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_refresh_token_cannot_open_a_session(self, service):
        token = service.create_refresh_token(USER_ID, "a@example.com", UserRole.ATHLETE)
        with pytest.raises(AuthError) as exc:
            service.extract_user_session(token)
        assert exc.value.kind is AuthErrorKind.INVALID_TOKEN


class TestExpiryHelpers:

    def test_is_token_expired(self, service):
        live = service.create_access_token(USER_ID, "a@example.com", UserRole.ATHLETE)
        dead = service.create_access_token(
            USER_ID, "a@example.com", UserRole.ATHLETE, expires_delta=timedelta(seconds=-1)
        )
        assert service.is_token_expired(live) is False
        assert service.is_token_expired(dead) is True
        assert service.is_token_expired("garbage") is True
        assert service.is_token_expired(_tamper(live)) is True

    def test_expired_at_the_exp_instant(self, service, monkeypatch):
        token = service.create_access_token(USER_ID, "a@example.com", UserRole.ATHLETE)
        exp = jwt.get_unverified_claims(token)["exp"]
        monkeypatch.setattr("core.security._now_ts", lambda: float(exp))

        assert service.is_token_expired(token) is True
        with pytest.raises(AuthError) as exc:
            service.validate_token(token)
        assert exc.value.kind is AuthErrorKind.TOKEN_EXPIRED

    def test_valid_just_before_exp(self, service, monkeypatch):
        token = service.create_access_token(USER_ID, "a@example.com", UserRole.ATHLETE)
        exp = jwt.get_unverified_claims(token)["exp"]
        monkeypatch.setattr("core.security._now_ts", lambda: exp - 0.5)

        assert service.is_token_expired(token) is False
        assert service.validate_token(token).exp == exp


class TestBearerExtraction:

    def test_valid_header(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize(
        "header",
        ["", "Bearer", "Bearer ", "bearer abc", "Basic abc", "Token abc", "Bearer  abc", "Bearer a b"],
    )
    def test_malformed_headers(self, header):
        with pytest.raises(AuthError) as exc:
            extract_bearer_token(header)
        assert exc.value.kind is AuthErrorKind.INVALID_AUTH_HEADER_FORMAT


def test_application_service_uses_settings():
    service = get_jwt_service()
    assert service.access_token_expires == timedelta(minutes=15)
    assert service.refresh_token_expires == timedelta(days=30)
