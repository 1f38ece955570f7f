import datetime
import uuid

import jwt
import structlog

from app.config import settings

logger = structlog.get_logger()


class JWTService:
    """Validate identity tokens issued by the hosted auth backend.

    Tokens are HS256-signed with a shared secret. ``sub`` is the owner id and
    ``session_id`` identifies the browser session.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        audience: str | None = None,
    ):
        self._secret_key = secret_key or settings.portal_jwt_secret
        self._algorithm = algorithm or settings.portal_jwt_algorithm
        self._audience = audience if audience is not None else settings.portal_jwt_audience

    def create_token(
        self,
        user_id: str,
        session_id: str | None = None,
        expiry_seconds: int = 3600,
    ) -> str:
        """Mint a token with the same claim shape as the auth backend (tests and local dev)."""
        now = datetime.datetime.now(datetime.timezone.utc)
        payload = {
            "sub": user_id,
            "session_id": session_id or str(uuid.uuid4()),
            "iat": now,
            "exp": now + datetime.timedelta(seconds=expiry_seconds),
        }
        if self._audience:
            payload["aud"] = self._audience
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> dict | None:
        """Decode and validate a JWT. Returns claims dict or None if invalid/expired."""
        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                audience=self._audience or None,
                options={"verify_aud": bool(self._audience), "require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("jwt_expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug("jwt_invalid", error=str(e))
            return None

    @staticmethod
    def session_id_from_claims(claims: dict) -> str:
        """Disclosure scope for a token: session_id, else jti, else the subject."""
        return str(claims.get("session_id") or claims.get("jti") or claims["sub"])
