"""
Unit tests for the run-scoped key context.
"""

import pytest
from unittest.mock import patch
from fieldcrypt.core.exceptions import AuthenticationFailure, WeakPasswordError
from fieldcrypt.core.models import FileManifest
from fieldcrypt.security.crypto import get_suite
from fieldcrypt.security.kdf import KdfParams
from fieldcrypt.security.session import RunContext


FAST_KDF = KdfParams(time_cost=1, memory_cost=8, parallelism=1)


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def suite():
    return get_suite("aes-256-gcm")


@pytest.fixture
def manifest(suite):
    """A manifest written by an encryption run with password 'correct-horse'."""
    with RunContext.for_encryption("correct-horse", suite, FAST_KDF) as ctx:
        return FileManifest(
            algorithm=suite.name,
            kdf=ctx.kdf_params,
            salt=ctx.salt,
            key_check=ctx.key_check(),
            fields=("ssn",),
        )


# ==============================================================================
# Tests: Lifecycle
# ==============================================================================

def test_for_encryption_generates_fresh_salt(suite):
    with RunContext.for_encryption("pw", suite, FAST_KDF) as a, \
            RunContext.for_encryption("pw", suite, FAST_KDF) as b:
        assert len(a.salt) == 16
        assert a.salt != b.salt
        assert a.key != b.key
        assert len(a.key) == suite.key_size


def test_close_zeroes_key_buffer(suite):
    ctx = RunContext.for_encryption("pw", suite, FAST_KDF)
    buffer = ctx._key
    assert any(buffer)

    ctx.close()

    assert ctx.closed
    assert all(b == 0 for b in buffer)
    with pytest.raises(RuntimeError, match="closed"):
        ctx.key


def test_context_manager_closes_on_error(suite):
    with pytest.raises(ValueError):
        with RunContext.for_encryption("pw", suite, FAST_KDF) as ctx:
            raise ValueError("boom")
    assert ctx.closed


def test_empty_password_rejected(suite):
    with pytest.raises(WeakPasswordError):
        RunContext.for_encryption("", suite, FAST_KDF)


# ==============================================================================
# Tests: Re-deriving from a manifest
# ==============================================================================

def test_for_manifest_rederives_same_key(suite, manifest):
    with RunContext.for_manifest("correct-horse", manifest) as ctx:
        assert ctx.salt == manifest.salt
        nonce, ct, tag = ctx.suite.encrypt(ctx.key, b"x")
    with RunContext.for_manifest(b"correct-horse", manifest) as again:
        assert again.suite.decrypt(again.key, nonce, ct, tag) == b"x"


def test_for_manifest_wrong_password(manifest):
    with pytest.raises(AuthenticationFailure):
        RunContext.for_manifest("wrong-password", manifest)


def test_for_manifest_closes_context_on_wrong_password(manifest):
    closed = []
    original = RunContext.close

    def spy(self):
        closed.append(True)
        original(self)

    with patch.object(RunContext, "close", spy):
        with pytest.raises(AuthenticationFailure):
            RunContext.for_manifest("wrong-password", manifest)
    assert closed


def test_key_is_the_buffer_that_close_wipes(suite):
    ctx = RunContext.for_encryption("pw", suite, FAST_KDF)
    key = ctx.key
    assert key is ctx.key
    nonce, ct, tag = suite.encrypt(key, b"value")
    assert suite.decrypt(key, nonce, ct, tag) == b"value"

    ctx.close()

    assert key == bytearray(len(key))
