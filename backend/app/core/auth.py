"""Session token issuance, decoding, and cookie management.

Session tokens are HS256 JWTs carrying an identity claim and an absolute
expiry. Decoding verifies the signature and ``exp`` only; the identity is
re-validated against the live user record by the session validator.

Tokens issued by earlier releases wrapped the identity claim in one or two
envelope levels. Every decoded payload is classified into exactly one of the
ClaimShape variants below; anything else is UnrecognizedClaim, which carries
no identity and therefore fails closed.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from fastapi import Request, Response

from app.core.config import settings

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"

# Claim keys that may carry the identity id, in precedence order
_IDENTITY_KEYS = ("id", "sub")

# Microsecond issue time. JWT "iat" is whole seconds, too coarse to order a
# token against a session cutoff set in the same second.
_ISSUED_AT_US_CLAIM = "iat_us"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


# ===================================================================
# Errors
# ===================================================================


class SessionTokenError(Exception):
    """Base class for session token decoding failures."""


class InvalidSessionSignature(SessionTokenError):
    """Signature does not match the server secret."""


class SessionTokenExpired(SessionTokenError):
    """Token's own ``exp`` claim is in the past."""


class MalformedSessionToken(SessionTokenError):
    """Token cannot be parsed or lacks required claims."""


# ===================================================================
# Claim shapes
# ===================================================================


@dataclass(frozen=True)
class FlatClaim:
    """Current shape: claims at the top level of the payload."""

    claims: dict[str, Any]


@dataclass(frozen=True)
class EnvelopeClaim:
    """Legacy shape: claims nested under ``payload``."""

    claims: dict[str, Any]


@dataclass(frozen=True)
class NestedEnvelopeClaim:
    """Legacy shape: claims nested under ``decoded.payload``."""

    claims: dict[str, Any]


@dataclass(frozen=True)
class UnrecognizedClaim:
    """Payload that matches no known shape. Never yields an identity."""


ClaimShape = FlatClaim | EnvelopeClaim | NestedEnvelopeClaim | UnrecognizedClaim


def classify_claim(payload: object) -> ClaimShape:
    """Classify a decoded payload into one of the known claim shapes.

    The deepest recognized envelope wins: ``decoded.payload`` before
    ``payload`` before the top level. Nesting beyond two levels is not
    searched.

    Args:
        payload: Decoded JWT payload.

    Returns:
        The matching ClaimShape variant.
    """
    if not isinstance(payload, dict):
        return UnrecognizedClaim()

    decoded = payload.get("decoded")
    if isinstance(decoded, dict) and isinstance(decoded.get("payload"), dict):
        return NestedEnvelopeClaim(claims=decoded["payload"])

    envelope = payload.get("payload")
    if isinstance(envelope, dict):
        return EnvelopeClaim(claims=envelope)

    if decoded is not None or envelope is not None:
        # An envelope key is present but holds no claim mapping
        return UnrecognizedClaim()

    return FlatClaim(claims=payload)


def _claims_of(shape: ClaimShape) -> dict[str, Any]:
    if isinstance(shape, (FlatClaim, EnvelopeClaim, NestedEnvelopeClaim)):
        return shape.claims
    return {}


def _issued_at(claims: dict[str, Any], payload: dict[str, Any]) -> datetime | None:
    iat_us = claims.get(_ISSUED_AT_US_CLAIM, payload.get(_ISSUED_AT_US_CLAIM))
    if isinstance(iat_us, int) and not isinstance(iat_us, bool):
        return _EPOCH + timedelta(microseconds=iat_us)

    iat = claims.get("iat", payload.get("iat"))
    if isinstance(iat, int | float) and not isinstance(iat, bool):
        return datetime.fromtimestamp(iat, UTC)
    return None


@dataclass(frozen=True)
class SessionClaim:
    """Identity claim reconstructed from a verified session token.

    Attributes:
        identity_id: Identity id string, or None when no id was found.
        email: Denormalized email at issuance time.
        name: Denormalized display name at issuance time.
        issued_at: Issue time, from ``iat_us`` when present, else ``iat``.
        shape: Which historical payload shape the token used.
    """

    identity_id: str | None
    email: str | None
    name: str | None
    issued_at: datetime | None
    shape: ClaimShape

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionClaim":
        """Extract the identity claim from a verified payload."""
        shape = classify_claim(payload)
        claims = _claims_of(shape)

        identity_id = None
        for key in _IDENTITY_KEYS:
            value = claims.get(key)
            if isinstance(value, str) and value:
                identity_id = value
                break

        issued_at = _issued_at(claims, payload)

        email = claims.get("email")
        name = claims.get("name")
        return cls(
            identity_id=identity_id,
            email=email if isinstance(email, str) else None,
            name=name if isinstance(name, str) else None,
            issued_at=issued_at,
            shape=shape,
        )


# ===================================================================
# Codec
# ===================================================================


class SessionTokenCodec:
    """Issues and verifies signed, time-limited session tokens.

    Args:
        secret: HMAC signing secret.
        issuer: ``iss`` claim written into issued tokens.
        default_ttl: Lifetime applied when issue() gets no explicit ttl.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "account-service",
        default_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._default_ttl = default_ttl

    @classmethod
    def from_settings(cls) -> "SessionTokenCodec":
        """Build a codec from the current settings."""
        return cls(
            settings.auth_secret.get_secret_value(),
            issuer=settings.auth_issuer,
            default_ttl=timedelta(hours=settings.session_ttl_hours),
        )

    @property
    def default_ttl(self) -> timedelta:
        """Lifetime of tokens issued without an explicit ttl."""
        return self._default_ttl

    def issue(
        self,
        *,
        identity_id: str,
        email: str,
        name: str | None = None,
        ttl: timedelta | None = None,
    ) -> str:
        """Issue a signed session token.

        Args:
            identity_id: Identity UUID string.
            email: Email to embed as a display claim.
            name: Display name to embed.
            ttl: Lifetime. Defaults to the codec's default_ttl.

        Returns:
            Encoded JWT string.
        """
        now = datetime.now(UTC)
        payload = {
            "sub": identity_id,
            "id": identity_id,
            "email": email,
            "name": name,
            "iss": self._issuer,
            "iat": now,
            _ISSUED_AT_US_CLAIM: (now - _EPOCH) // timedelta(microseconds=1),
            "exp": now + (ttl or self._default_ttl),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def decode(self, token: str) -> SessionClaim:
        """Verify a session token and extract its identity claim.

        Args:
            token: Encoded JWT.

        Returns:
            SessionClaim (identity_id is None if no recognizable id exists).

        Raises:
            SessionTokenExpired: ``exp`` has passed.
            InvalidSessionSignature: Signature mismatch.
            MalformedSessionToken: Undecodable token or missing ``exp``.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"require": ["exp"], "verify_aud": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise SessionTokenExpired("Session token expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidSessionSignature("Session token signature mismatch") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedSessionToken("Session token is malformed") from exc

        return SessionClaim.from_payload(payload)


# ===================================================================
# Request / cookie helpers
# ===================================================================


def session_token_from_request(request: Request) -> str | None:
    """Read the raw session token from a request.

    An ``Authorization: Bearer`` header takes precedence over the session
    cookie.

    Returns:
        The token string, or None when the request carries neither.
    """
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.auth_cookie_name) or None


def set_auth_cookie(response: Response, token: str, *, max_age: timedelta) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: Session token string.
        max_age: Cookie lifetime (matches the token's ttl).
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(max_age.total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Delete the session cookie.

    Cookie attributes must match set_auth_cookie() for browsers to delete it.
    """
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )
