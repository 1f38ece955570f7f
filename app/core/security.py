import hashlib
import hmac
import secrets
import string

from app.config import settings
from app.core.exceptions import EntropySourceUnavailableError

API_KEY_TAG = "wap_"
API_KEY_ALPHABET = string.ascii_letters + string.digits
API_KEY_RANDOM_CHARS = 32  # 32 chars from a 62-symbol alphabet → ~190 bits
API_KEY_LENGTH = len(API_KEY_TAG) + API_KEY_RANDOM_CHARS  # 36
API_KEY_PREFIX_LENGTH = 8  # wap_ + 4 random chars
MASK_CHAR = "*"


def generate_api_key() -> str:
    """Generate a new API key: wap_ + 32 alphanumeric chars from the OS CSPRNG."""
    try:
        random_part = "".join(secrets.choice(API_KEY_ALPHABET) for _ in range(API_KEY_RANDOM_CHARS))
    except (NotImplementedError, OSError) as exc:
        raise EntropySourceUnavailableError(details={"reason": str(exc)}) from exc
    return f"{API_KEY_TAG}{random_part}"


def hash_api_key(key: str) -> str:
    """SHA-256 hash of the full API key."""
    return hashlib.sha256(key.encode()).hexdigest()


def get_key_prefix(key: str) -> str:
    """Return the first 8 chars of the key for display (wap_ + 4 chars)."""
    return key[:API_KEY_PREFIX_LENGTH]


def mask_api_key(prefix: str, mask_length: int | None = None) -> str:
    """Prefix followed by a fixed run of mask chars, independent of the real key length."""
    length = settings.portal_key_mask_length if mask_length is None else mask_length
    return f"{prefix}{MASK_CHAR * length}"


def verify_api_key(candidate: str, key_hash: str) -> bool:
    """Constant-time check of a presented key against a stored digest."""
    return hmac.compare_digest(hash_api_key(candidate), key_hash)


def is_well_formed_api_key(value: str) -> bool:
    """Shape check only: tag, total length and alphabet. Says nothing about validity."""
    if len(value) != API_KEY_LENGTH or not value.startswith(API_KEY_TAG):
        return False
    return all(ch in API_KEY_ALPHABET for ch in value[len(API_KEY_TAG):])
