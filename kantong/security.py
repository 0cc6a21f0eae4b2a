"""
Password hashing for business credentials.

A business can be logged into from any chat handle that knows its name,
username and password, so the password is a real shared secret and is
never stored in plaintext. Hashes use Argon2id through passlib's
CryptContext; "deprecated='auto'" lets a future scheme take over while old
hashes keep verifying.
"""

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """Hash a plaintext password using Argon2id. The salt is embedded in the hash."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)
