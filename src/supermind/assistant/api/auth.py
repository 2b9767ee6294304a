"""
JWT Authentication for the Assistant API.

Resolves the ``Authorization: Bearer`` header to a ``UserContext``.
The orchestrator only ever receives the resolved identity, never the
raw credential.

Keys come from one of:
- JWT_JWKS_URL: a JSON Web Key Set, e.g. a Cognito user pool's
  ``https://cognito-idp.<region>.amazonaws.com/<pool>/.well-known/jwks.json``
- JWT_SECRET: shared secret for HS* algorithms
- JWT_PUBLIC_KEY: PEM text or a path to a PEM file for RS*/ES*/PS*

Other settings: JWT_ALGORITHM (HS256), JWT_ISSUER, JWT_AUDIENCE,
JWT_USER_ID_CLAIM (sub), JWT_CLOCK_SKEW_SECONDS (30) and REQUIRE_AUTH
(true). Settings are read when the verifier is first needed, after
``.env`` has been loaded.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError, PyJWKClientError
from pydantic import BaseModel

from ..domain.entities import UserContext

logger = logging.getLogger(__name__)

SYMMETRIC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
ASYMMETRIC_ALGORITHMS = frozenset({
    "RS256", "RS384", "RS512",
    "ES256", "ES384", "ES512",
    "PS256", "PS384", "PS512",
})

DEV_USER_ID = "dev-user"


@dataclass(frozen=True)
class AuthSettings:
    """Token verification settings."""

    secret: Optional[str] = None
    public_key: Optional[str] = None
    jwks_url: Optional[str] = None
    algorithm: str = "HS256"
    issuer: Optional[str] = None
    audience: Optional[str] = None
    user_id_claim: str = "sub"
    clock_skew_seconds: int = 30
    require_auth: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> AuthSettings:
        env = os.environ if environ is None else environ
        return cls(
            secret=env.get("JWT_SECRET") or None,
            public_key=env.get("JWT_PUBLIC_KEY") or None,
            jwks_url=env.get("JWT_JWKS_URL") or None,
            algorithm=env.get("JWT_ALGORITHM", "HS256"),
            issuer=env.get("JWT_ISSUER") or None,
            audience=env.get("JWT_AUDIENCE") or None,
            user_id_claim=env.get("JWT_USER_ID_CLAIM", "sub"),
            clock_skew_seconds=int(env.get("JWT_CLOCK_SKEW_SECONDS", "30")),
            require_auth=env.get("REQUIRE_AUTH", "true").lower() == "true",
        )


class TokenPayload(BaseModel):
    """Validated JWT payload."""

    user_id: str
    email: Optional[str] = None

    iss: Optional[str] = None
    aud: Optional[Union[str, list[str]]] = None
    exp: Optional[int] = None
    iat: Optional[int] = None


class AuthenticationError(HTTPException):
    """Authentication failure exception (401)."""

    def __init__(self, detail: str, headers: Optional[dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers=headers or {"WWW-Authenticate": "Bearer"},
        )


def parse_bearer(authorization: Optional[str]) -> str:
    """Return the token of a ``Bearer <token>`` header.

    Raises:
        AuthenticationError: If the header is missing or malformed
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")
    return token


class TokenVerifier:
    """Verifies bearer tokens against one AuthSettings.

    Usage:
        verifier = TokenVerifier(AuthSettings(secret="..."))
        payload = verifier.verify(token)
    """

    def __init__(self, settings: AuthSettings, jwks_client: Optional[jwt.PyJWKClient] = None):
        self.settings = settings
        self._jwks_client = jwks_client
        self._public_key: Optional[str] = None

    @property
    def algorithm(self) -> str:
        """The configured algorithm, checked against the allowlist.

        Raises:
            ValueError: For 'none' or any algorithm outside the allowlist
        """
        algorithm = self.settings.algorithm.upper()
        if algorithm not in SYMMETRIC_ALGORITHMS | ASYMMETRIC_ALGORITHMS:
            raise ValueError(f"JWT algorithm '{self.settings.algorithm}' is not allowed")
        return algorithm

    def check(self) -> None:
        """Fail early when no key can be resolved.

        Raises:
            ValueError: If the configuration cannot verify any token
        """
        algorithm = self.algorithm
        if self.settings.jwks_url:
            return
        if algorithm in SYMMETRIC_ALGORITHMS:
            if not self.settings.secret:
                raise ValueError(f"JWT_SECRET required for symmetric algorithm {algorithm}")
            return
        self._load_public_key()

    def signing_key(self, token: str) -> Any:
        if self.settings.jwks_url:
            if self._jwks_client is None:
                self._jwks_client = jwt.PyJWKClient(self.settings.jwks_url, cache_keys=True)
            return self._jwks_client.get_signing_key_from_jwt(token).key
        if self.algorithm in SYMMETRIC_ALGORITHMS:
            return self.settings.secret
        return self._load_public_key()

    def _load_public_key(self) -> str:
        if self._public_key:
            return self._public_key

        key = self.settings.public_key
        if not key:
            raise ValueError(
                f"JWT_PUBLIC_KEY or JWT_JWKS_URL required for algorithm {self.settings.algorithm}"
            )
        if os.path.isfile(key):
            logger.info(f"Loading JWT public key from file: {key}")
            with open(key, "r") as f:
                key = f.read()
        if not key.strip().startswith("-----BEGIN"):
            raise ValueError("JWT_PUBLIC_KEY must be PEM format (starting with '-----BEGIN')")

        self._public_key = key
        return key

    def verify(self, token: str) -> TokenPayload:
        """Validate a token and extract its payload.

        Raises:
            AuthenticationError: If the token is invalid
        """
        settings = self.settings
        try:
            claims = jwt.decode(
                token,
                self.signing_key(token),
                algorithms=[self.algorithm],
                issuer=settings.issuer,
                audience=settings.audience,
                leeway=settings.clock_skew_seconds,
                options={
                    "verify_iss": bool(settings.issuer),
                    "verify_aud": bool(settings.audience),
                    "require": ["exp"],
                },
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT expired")
            raise AuthenticationError("Token has expired")
        except jwt.ImmatureSignatureError as e:
            logger.warning(f"JWT not yet valid: {e}")
            raise AuthenticationError(f"Token not yet valid: {e}")
        except (jwt.InvalidAudienceError, jwt.InvalidIssuerError) as e:
            logger.warning(f"JWT claim error: {e}")
            raise AuthenticationError(f"Invalid token claims: {e}")
        except (PyJWKClientError, InvalidTokenError) as e:
            logger.warning(f"JWT validation failed: {e}")
            raise AuthenticationError("Invalid token")

        user_id = claims.get(settings.user_id_claim)
        if not user_id:
            logger.warning(f"Missing {settings.user_id_claim} claim in token")
            raise AuthenticationError(f"Token missing required claim: {settings.user_id_claim}")

        return TokenPayload(
            user_id=str(user_id),
            email=claims.get("email") or claims.get("cognito:username"),
            iss=claims.get("iss"),
            aud=claims.get("aud"),
            exp=claims.get("exp"),
            iat=claims.get("iat"),
        )


# =============================================================================
# FastAPI dependencies
# =============================================================================

_verifier: Optional[TokenVerifier] = None


def configure_auth(settings: Optional[AuthSettings] = None) -> TokenVerifier:
    """Install the process-wide verifier (settings default to the environment)."""
    global _verifier
    _verifier = TokenVerifier(settings or AuthSettings.from_env())
    if not _verifier.settings.require_auth:
        logger.warning("REQUIRE_AUTH=false - authentication disabled, never use in production")
    return _verifier


def get_verifier() -> TokenVerifier:
    if _verifier is None:
        return configure_auth()
    return _verifier


async def validate_jwt_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    verifier: TokenVerifier = Depends(get_verifier),
) -> TokenPayload:
    """FastAPI dependency for JWT validation.

    Raises:
        HTTPException: 500 if auth is required but cannot be performed
        AuthenticationError: If authentication fails
    """
    if not verifier.settings.require_auth:
        return TokenPayload(user_id=DEV_USER_ID)

    try:
        verifier.check()
    except ValueError as e:
        logger.error(f"JWT configuration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server authentication not configured",
        )

    return verifier.verify(parse_bearer(authorization))


def get_user_context_jwt(
    token_payload: TokenPayload = Depends(validate_jwt_token),
) -> UserContext:
    """Build the caller's UserContext from a validated JWT.

    The session is not part of the token; routes bind it with
    ``UserContext.with_session``.
    """
    return UserContext(user_id=token_payload.user_id)
