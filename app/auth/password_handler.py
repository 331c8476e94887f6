"""
Password hashing and verification utilities
Uses bcrypt for secure password storage
"""
from passlib.context import CryptContext
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12
)

BCRYPT_MAX_BYTES = 72


class PasswordHandler:
    """Handle password operations"""

    @staticmethod
    def _truncate_to_72_bytes(password: str) -> str:
        """
        Truncate password to 72 bytes for bcrypt without splitting a UTF-8 character
        """
        password_bytes = password.encode('utf-8')
        if len(password_bytes) <= BCRYPT_MAX_BYTES:
            return password

        # errors="ignore" drops a trailing partial multi-byte sequence
        return password_bytes[:BCRYPT_MAX_BYTES].decode('utf-8', errors='ignore')

    @staticmethod
    def hash_password(password: str) -> str:
        return pwd_context.hash(PasswordHandler._truncate_to_72_bytes(password))

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against hash; malformed hashes count as a mismatch"""
        try:
            return pwd_context.verify(PasswordHandler._truncate_to_72_bytes(plain_password), hashed_password)
        except (ValueError, TypeError) as e:
            logger.error(f"Password verification error: {str(e)}")
            return False
