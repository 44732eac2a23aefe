from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from jose import JWTError, jwt

from inventory_backend.core.config import JWT_ALGORITHM, JWT_SECRET_KEY
from inventory_backend.services.errors import TokenInvalid

HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
_REQUIRED_CLAIMS = ("user_id", "tenant_id", "session_id", "exp", "iat")


def _epoch(value: datetime) -> int:
    # Naive datetimes are UTC throughout the engine.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


class TokenSigner:
    """Sign and verify session access tokens (HMAC JWT)."""

    def __init__(self, secret_key: str = JWT_SECRET_KEY, algorithm: str = JWT_ALGORITHM) -> None:
        if not secret_key:
            raise RuntimeError("JWT_SECRET_KEY must be configured")
        algorithm = (algorithm or "").upper()
        if algorithm not in HMAC_ALGORITHMS:
            raise RuntimeError(f"Unsupported JWT algorithm {algorithm}")
        self._secret_key = secret_key
        self.algorithm = algorithm

    def issue(
        self,
        *,
        user_id: int,
        tenant_id: str,
        session_id: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> str:
        payload: Dict[str, Any] = {
            "user_id": int(user_id),
            "tenant_id": str(tenant_id),
            "session_id": str(session_id),
            "iat": _epoch(issued_at),
            "exp": _epoch(expires_at),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Return verified claims or raise TokenInvalid.

        Expiry is not checked here; the session row is the source of truth for it.
        """
        if not token:
            raise TokenInvalid()
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenInvalid() from exc
        if str(header.get("alg", "")).upper() != self.algorithm:
            raise TokenInvalid("Unexpected token signing method")

        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenInvalid() from exc

        for name in _REQUIRED_CLAIMS:
            if claims.get(name) in (None, ""):
                raise TokenInvalid(f"Token is missing claim {name}")
        try:
            claims["user_id"] = int(claims["user_id"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalid() from exc
        return claims
