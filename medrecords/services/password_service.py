import base64
import hashlib
import hmac
import secrets

from passlib.context import CryptContext  # type: ignore

from medrecords.core.config import settings

LEGACY_SCHEME = "salted_sha256"
SALT_BYTES = 16

# PBKDF2 keeps the dependency pure-Python (no native bcrypt build on some platforms).
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _legacy_digest(password: str, salt_b64: str) -> str:
    digest = hashlib.sha256((password + salt_b64).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def hash_password_legacy(password: str) -> str:
    """`base64(salt):base64(sha256(password + base64(salt)))`, the format of older user rows."""
    salt_b64 = base64.b64encode(secrets.token_bytes(SALT_BYTES)).decode("ascii")
    return f"{salt_b64}:{_legacy_digest(password, salt_b64)}"


def is_legacy_hash(encoded: str) -> bool:
    return not encoded.startswith("$") and encoded.count(":") == 1


def hash_password(password: str, scheme: str | None = None) -> str:
    if (scheme or settings.password_scheme) == LEGACY_SCHEME:
        return hash_password_legacy(password)
    return pwd_context.hash(password)


def verify_password(password: str, encoded: str | None) -> bool:
    if not encoded or password is None:
        return False
    if is_legacy_hash(encoded):
        salt_b64, stored = encoded.split(":")
        if not salt_b64 or not stored:
            return False
        return hmac.compare_digest(_legacy_digest(password, salt_b64).encode(), stored.encode())
    try:
        return pwd_context.verify(password, encoded)
    except (ValueError, TypeError):
        return False


def needs_rehash(encoded: str) -> bool:
    if settings.password_scheme == LEGACY_SCHEME:
        return not is_legacy_hash(encoded)
    return is_legacy_hash(encoded) or pwd_context.needs_update(encoded)
