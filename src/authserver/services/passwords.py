"""Password hashing with argon2id."""

import logging

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger(__name__)


class Hasher:
    """Hashes and verifies passwords."""

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self._hasher = hasher or PasswordHasher(type=Type.ID)

    def hash(self, plaintext: str) -> str:
        return self._hasher.hash(plaintext)

    def verify(self, plaintext: str, digest: str) -> bool:
        """Check a password against a stored digest; never raises on mismatch."""
        try:
            return self._hasher.verify(digest, plaintext)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            logger.warning("Stored password hash could not be verified")
            return False


hasher = Hasher()
