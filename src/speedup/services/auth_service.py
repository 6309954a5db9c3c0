"""Credential extraction and the API-key / signed-token gate."""
from __future__ import annotations
import hmac
import re
from enum import Enum
import jwt
from jwt import InvalidTokenError
from speedup.config import Settings
from speedup.domain.exceptions import InvalidCredentialError, UnauthenticatedError
from speedup.logging import logger

TOKEN_ALGORITHMS = ["HS256"]

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


class AuthResult(str, Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED_UNAUTHENTICATED = "REJECTED_UNAUTHENTICATED"
    REJECTED_INVALID = "REJECTED_INVALID"


def extract_credential(
    header_key: str | None,
    query_key: str | None,
    authorization: str | None,
) -> str | None:
    """Return the first non-empty of x-api-key header, api_key query, bearer token."""
    if header_key:
        return header_key
    if query_key:
        return query_key
    if authorization:
        token = _BEARER_PREFIX.sub("", authorization, count=1)
        return token or None
    return None


def verify_token(token: str, secret: str) -> dict:
    """Decode *token* against *secret*; raises ``InvalidTokenError`` on failure."""
    return jwt.decode(token, secret, algorithms=TOKEN_ALGORITHMS)


def authenticate(
    credential: str | None,
    api_key: str | None,
    signing_secret: str | None,
) -> AuthResult:
    if api_key and credential is not None and hmac.compare_digest(
        credential.encode("utf-8"), api_key.encode("utf-8")
    ):
        return AuthResult.ACCEPTED

    if signing_secret and credential:
        try:
            claims = verify_token(credential, signing_secret)
        except InvalidTokenError as exc:
            logger.info("Token rejected: %s", exc)
            return AuthResult.REJECTED_INVALID
        logger.debug("Authenticated token subject: %s", claims.get("sub"))
        return AuthResult.ACCEPTED

    return AuthResult.REJECTED_UNAUTHENTICATED


def raise_for_result(result: AuthResult) -> None:
    """Raise the domain error matching a rejected result; no-op when accepted."""
    if result is AuthResult.ACCEPTED:
        return
    if result is AuthResult.REJECTED_INVALID:
        raise InvalidCredentialError()
    raise UnauthenticatedError()


class AuthService:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def enforced(self) -> bool:
        """False only when auth is explicitly optional and nothing is configured."""
        s = self._settings
        return s.AUTH_REQUIRED or bool(s.api_key or s.signing_secret)

    def check(self, credential: str | None) -> AuthResult:
        if not self.enforced:
            return AuthResult.ACCEPTED
        return authenticate(credential, self._settings.api_key, self._settings.signing_secret)
