import hashlib
import math
import string
from unittest.mock import patch

import pytest

from app.core.exceptions import EntropySourceUnavailableError
from app.core.security import (
    API_KEY_LENGTH,
    API_KEY_PREFIX_LENGTH,
    API_KEY_TAG,
    generate_api_key,
    get_key_prefix,
    hash_api_key,
    is_well_formed_api_key,
    mask_api_key,
    verify_api_key,
)


def test_generate_api_key_format():
    key = generate_api_key()
    assert key.startswith("wap_")
    assert len(key) == API_KEY_LENGTH == 36
    assert all(ch in string.ascii_letters + string.digits for ch in key[4:])


def test_generate_api_key_no_collisions():
    keys = {generate_api_key() for _ in range(10_000)}
    assert len(keys) == 10_000


def test_generate_api_key_entropy_floor():
    # 32 symbols from a 62-char alphabet: 32 * log2(62) ≈ 190 bits
    random_len = API_KEY_LENGTH - len(API_KEY_TAG)
    assert random_len * math.log2(62) >= 128


def test_generate_api_key_fails_without_entropy_source():
    with patch("app.core.security.secrets.choice", side_effect=NotImplementedError("no urandom")):
        with pytest.raises(EntropySourceUnavailableError) as exc_info:
            generate_api_key()
    assert exc_info.value.code == "entropy_unavailable"


def test_hash_api_key_is_sha256_hex():
    key = generate_api_key()
    digest = hash_api_key(key)
    assert digest == hashlib.sha256(key.encode()).hexdigest()
    assert len(digest) == 64


def test_hash_api_key_deterministic():
    key = generate_api_key()
    assert hash_api_key(key) == hash_api_key(key)


def test_hash_api_key_different_keys():
    k1, k2 = generate_api_key(), generate_api_key()
    assert hash_api_key(k1) != hash_api_key(k2)


def test_digest_does_not_contain_secret():
    key = generate_api_key()
    digest = hash_api_key(key)
    assert key not in digest
    assert key[len(API_KEY_TAG):] not in digest


def test_get_key_prefix():
    key = "wap_abcdef1234567890"
    assert get_key_prefix(key) == "wap_abcd"


def test_prefix_is_literal_prefix_and_idempotent():
    for _ in range(100):
        key = generate_api_key()
        prefix = get_key_prefix(key)
        assert len(prefix) == API_KEY_PREFIX_LENGTH
        assert key.startswith(prefix)
        assert prefix.startswith(API_KEY_TAG)
        assert get_key_prefix(key) == prefix


def test_mask_length_is_constant():
    assert mask_api_key("wap_abcd") == "wap_abcd" + "*" * 20
    assert mask_api_key("wap_abcd", mask_length=5) == "wap_abcd*****"


def test_verify_api_key():
    key = generate_api_key()
    assert verify_api_key(key, hash_api_key(key)) is True
    assert verify_api_key(generate_api_key(), hash_api_key(key)) is False


def test_is_well_formed_api_key():
    assert is_well_formed_api_key(generate_api_key()) is True
    assert is_well_formed_api_key("wap_short") is False
    assert is_well_formed_api_key("sk__" + "a" * 32) is False
    assert is_well_formed_api_key("wap_" + "-" * 32) is False
