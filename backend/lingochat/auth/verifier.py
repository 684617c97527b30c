"""Bearer credential verification.

Tokens are HS256 JWTs issued by the account service; this module only
verifies them. The ``sub`` claim carries the integer user id.
"""
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request
from jose import JWTError, jwt

from lingochat.chat.errors import AuthenticationError
from lingochat.config import get_config

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token part of an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationError: If the header is missing or not a bearer header.
    """
    if not authorization:
        raise AuthenticationError("Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid Authorization header format")

    token = parts[1].strip()
    if not token:
        raise AuthenticationError("Missing bearer token")
    return token


class CredentialVerifier:
    """Verifies signed bearer tokens and yields the subject user id."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    @classmethod
    def from_config(cls) -> "CredentialVerifier":
        secrets = get_config().secrets.jwt
        return cls(secrets.secret_key, secrets.algorithm)

    def verify(self, token: str) -> int:
        """Verify a token and return its subject.

        Raises:
            AuthenticationError: Bad signature, expired, or unusable ``sub``.
        """
        try:
            # Numeric subjects are allowed, the claim is coerced below
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_sub": False},
            )
        except JWTError as exc:
            raise AuthenticationError("Invalid or expired token") from exc

        sub = payload.get("sub")
        if sub is None:
            raise AuthenticationError("Token missing sub claim")
        try:
            return int(sub)
        except (TypeError, ValueError) as exc:
            raise AuthenticationError("Invalid sub claim (not a user id)") from exc


def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> int:
    """FastAPI dependency resolving the caller of a REST endpoint."""
    verifier: CredentialVerifier = request.app.state.verifier
    try:
        return verifier.verify(extract_bearer_token(authorization))
    except AuthenticationError as exc:
        logger.debug("[Auth] Rejected REST call: %s", exc)
        raise HTTPException(status_code=401, detail=str(exc))
