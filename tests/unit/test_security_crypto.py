"""Unit tests for the AEAD cipher engine."""

import os

import pytest
from fieldcrypt.core.exceptions import AuthenticationFailure, UnsupportedAlgorithmError
from fieldcrypt.security.crypto import (
    AES_256_GCM,
    CHACHA20_POLY1305,
    CIPHER_SUITES,
    DEFAULT_ALGORITHM,
    decrypt,
    encrypt,
    get_suite,
)


@pytest.fixture(params=sorted(CIPHER_SUITES))
def suite(request):
    """Every registered cipher suite."""
    return get_suite(request.param)


@pytest.fixture
def key():
    return os.urandom(32)


def test_default_is_aes_256_gcm():
    assert DEFAULT_ALGORITHM == AES_256_GCM
    suite = get_suite(DEFAULT_ALGORITHM)
    assert (suite.key_size, suite.nonce_size, suite.tag_size) == (32, 12, 16)


def test_get_suite_is_case_insensitive():
    assert get_suite("ChaCha20-Poly1305").name == CHACHA20_POLY1305


def test_get_suite_unknown():
    with pytest.raises(UnsupportedAlgorithmError, match="aes-256-cbc"):
        get_suite("aes-256-cbc")


def test_encrypt_decrypt_roundtrip(suite, key):
    nonce, ct, tag = encrypt(suite, key, b"123-45-6789", b"ssn")

    assert len(nonce) == suite.nonce_size
    assert len(tag) == suite.tag_size
    assert len(ct) == len(b"123-45-6789")
    assert decrypt(suite, key, nonce, ct, tag, b"ssn") == b"123-45-6789"


def test_empty_plaintext(suite, key):
    nonce, ct, tag = suite.encrypt(key, b"")
    assert ct == b""
    assert suite.decrypt(key, nonce, ct, tag) == b""


def test_fresh_nonce_per_call(suite, key):
    """Encrypting the same value twice gives different nonces and ciphertexts."""
    first = suite.encrypt(key, b"same value")
    second = suite.encrypt(key, b"same value")
    assert first[0] != second[0]
    assert first[1] != second[1]


def test_flipped_ciphertext_bit_fails(suite, key):
    nonce, ct, tag = suite.encrypt(key, b"sensitive")
    tampered = bytes([ct[0] ^ 0x01]) + ct[1:]
    with pytest.raises(AuthenticationFailure):
        suite.decrypt(key, nonce, tampered, tag)


def test_flipped_tag_bit_fails(suite, key):
    nonce, ct, tag = suite.encrypt(key, b"sensitive")
    tampered = tag[:-1] + bytes([tag[-1] ^ 0x80])
    with pytest.raises(AuthenticationFailure):
        suite.decrypt(key, nonce, ct, tampered)


def test_wrong_key_fails(suite, key):
    nonce, ct, tag = suite.encrypt(key, b"sensitive")
    with pytest.raises(AuthenticationFailure):
        suite.decrypt(os.urandom(32), nonce, ct, tag)


def test_associated_data_must_match(suite, key):
    """An envelope moved to another field does not authenticate."""
    nonce, ct, tag = suite.encrypt(key, b"sensitive", b"ssn")
    with pytest.raises(AuthenticationFailure):
        suite.decrypt(key, nonce, ct, tag, b"name")


def test_key_size_is_enforced(suite):
    with pytest.raises(ValueError, match="32-byte key"):
        suite.encrypt(os.urandom(16), b"data")
