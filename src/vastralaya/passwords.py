"""Password hashing for stored credentials."""

from passlib.context import CryptContext

_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _context.hash(password)


def check_password(password: str, encoded: str) -> bool:
    """False for a wrong password or a hash that can't be identified."""
    try:
        return _context.verify(password, encoded)
    except ValueError:
        return False
