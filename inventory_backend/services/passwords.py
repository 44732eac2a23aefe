from __future__ import annotations

import bcrypt

from inventory_backend.core.config import BCRYPT_ROUNDS

# bcrypt only considers the first 72 bytes of the input.
BCRYPT_MAX_BYTES = 72


def _normalize_password_for_bcrypt(password: str) -> bytes:
    pw = (password or "").encode("utf-8")
    if len(pw) <= BCRYPT_MAX_BYTES:
        return pw
    return pw[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted bcrypt hashing with a configurable cost factor."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        pw = _normalize_password_for_bcrypt(password)
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(pw, salt)
        return hashed.decode("utf-8")

    def verify(self, plain_password: str, password_hash: str) -> bool:
        try:
            pw = _normalize_password_for_bcrypt(plain_password)
            ph = (password_hash or "").encode("utf-8")
            return bcrypt.checkpw(pw, ph)
        except Exception:
            return False
