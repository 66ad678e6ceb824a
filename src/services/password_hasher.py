"""bcrypt password hashing."""

from typing import Optional

import bcrypt

# bcrypt rejects (newer releases) or silently truncates (older ones) longer input
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way password hashing and verification."""

    # Shared across instances; used to equalize timing for unknown accounts
    _dummy_hash: Optional[str] = None

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string

        Raises:
            ValueError: If the password is longer than 72 bytes as UTF-8
        """
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
        hashed = bcrypt.hashpw(encoded, bcrypt.gensalt())
        return hashed.decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        An empty hash (accounts created through an identity provider)
        never matches, and neither does a password too long to have been
        hashed in the first place.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise
        """
        encoded = password.encode("utf-8")
        if not password_hash or len(encoded) > MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))

    def burn_verification(self, password: str) -> None:
        """Run a throwaway bcrypt check so unknown accounts cost the same time."""
        if PasswordHasher._dummy_hash is None:
            PasswordHasher._dummy_hash = self.hash_password("dummy-password-for-timing")
        self.verify_password(password, PasswordHasher._dummy_hash)
