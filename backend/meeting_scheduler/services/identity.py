"""Bearer-token verification.

The API never issues credentials; it only exchanges a bearer token for a
verified identity through an ``IdentityVerifier``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from jose import JWTError, jwt

from meeting_scheduler.logging_utils import get_logger

logger = get_logger(__name__)


class InvalidCredentialError(Exception):
    """The token is expired, malformed, revoked or not trusted."""


@dataclass(frozen=True)
class VerifiedIdentity:
    uid: str
    email: Optional[str] = None
    claims: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class AuthContext:
    """What a handler knows about the caller once the bearer token checked out."""

    identity: VerifiedIdentity
    request_id: Optional[str] = None

    @property
    def uid(self) -> str:
        return self.identity.uid


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> VerifiedIdentity:
        ...


def identity_from_claims(claims: dict[str, Any]) -> VerifiedIdentity:
    uid = claims.get("sub") or claims.get("uid") or claims.get("user_id")
    if not uid or not isinstance(uid, str):
        raise InvalidCredentialError("token carries no subject")
    return VerifiedIdentity(uid=uid, email=claims.get("email"), claims=dict(claims))


class JwtIdentityVerifier:
    """Verify HS/RS-signed JWTs locally (development, tests, self-hosted IdPs)."""

    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = None) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    def verify(self, token: str) -> VerifiedIdentity:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError as exc:
            logger.info("jwt rejected", extra={"reason": str(exc)})
            raise InvalidCredentialError(str(exc)) from exc
        return identity_from_claims(claims)

    def issue(self, uid: str, **claims: Any) -> str:
        """Mint a token this verifier accepts (local tooling only)."""
        to_encode: dict[str, Any] = {"sub": uid, **claims}
        if self._audience is not None:
            to_encode.setdefault("aud", self._audience)
        return jwt.encode(to_encode, self._secret, algorithm=self._algorithm)
