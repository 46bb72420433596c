"""
Tests for CryptoService

Tests cover:
- Token value generation
- Vault sealing/unsealing under a session key
- Keyed hashing and verification
- HKDF key derivation
- Error handling and edge cases
"""

import pytest

from tokenvault.services.tokens import CryptoService
from tokenvault.services.tokens.crypto_service import (
    CryptoError,
    EncryptionError,
    DecryptionError
)


@pytest.fixture
def crypto():
    return CryptoService(hash_iterations=1000)


class TestTokenGeneration:
    """Test bearer token generation"""

    def test_generate_token_is_hex_of_32_bytes(self, crypto):
        token = crypto.generate_token()

        assert len(token) == 64
        assert bytes.fromhex(token)

    def test_generate_token_unique(self, crypto):
        tokens = {crypto.generate_token() for _ in range(100)}
        assert len(tokens) == 100

    def test_generate_secret_length(self, crypto):
        assert len(crypto.generate_secret()) == CryptoService.TOKEN_LENGTH
        assert len(crypto.generate_secret(16)) == 16

    def test_generate_secret_invalid_length(self, crypto):
        with pytest.raises(ValueError, match="Secret length must be positive"):
            crypto.generate_secret(0)

    def test_invalid_hash_iterations(self):
        with pytest.raises(ValueError):
            CryptoService(hash_iterations=0)


class TestVaultSealing:
    """Test vault sealing and unsealing"""

    def test_seal_unseal_round_trip(self, crypto):
        key = CryptoService.generate_session_key()
        token = crypto.generate_token()
        payload = ("masterHashABC" + token).encode("utf-8")

        vault = crypto.seal(payload, key)

        assert isinstance(vault, str)
        assert crypto.unseal(vault, key) == payload

    def test_vault_does_not_contain_plaintext(self, crypto):
        key = CryptoService.generate_session_key()
        vault = crypto.seal(b"masterHashABC", key)

        assert "masterHashABC" not in vault

    def test_seal_uses_fresh_iv(self, crypto):
        key = CryptoService.generate_session_key()

        assert crypto.seal(b"same", key) != crypto.seal(b"same", key)

    def test_unseal_with_wrong_key_fails(self, crypto):
        vault = crypto.seal(b"secret", CryptoService.generate_session_key())

        with pytest.raises(DecryptionError, match="wrong session key"):
            crypto.unseal(vault, CryptoService.generate_session_key())

    def test_unseal_tampered_vault_fails(self, crypto):
        key = CryptoService.generate_session_key()
        vault = crypto.seal(b"secret", key)
        tampered = vault[:-4] + ("AAAA" if vault[-4:] != "AAAA" else "BBBB")

        with pytest.raises(DecryptionError):
            crypto.unseal(tampered, key)

    def test_unseal_garbage_fails(self, crypto):
        with pytest.raises(DecryptionError):
            crypto.unseal("not-a-vault", CryptoService.generate_session_key())

    def test_seal_rejects_short_key(self, crypto):
        with pytest.raises(EncryptionError, match="32 bytes"):
            crypto.seal(b"secret", b"short")

    def test_unseal_rejects_short_key(self, crypto):
        with pytest.raises(DecryptionError, match="32 bytes"):
            crypto.unseal("anything", b"short")

    def test_errors_share_base_class(self):
        assert issubclass(EncryptionError, CryptoError)
        assert issubclass(DecryptionError, CryptoError)


class TestKeyedHash:
    """Test keyed hashing of secrets"""

    def test_hash_key_format(self, crypto):
        hashed = crypto.hash_key("masterHashABC")
        scheme, iterations, salt, digest = hashed.split("$")

        assert scheme == "pbkdf2_sha256"
        assert iterations == "1000"
        assert salt
        assert digest

    def test_hash_key_is_salted(self, crypto):
        assert crypto.hash_key("masterHashABC") != crypto.hash_key("masterHashABC")

    def test_check_hash_key_matches(self, crypto):
        hashed = crypto.hash_key("masterHashABC")

        assert crypto.check_hash_key("masterHashABC", hashed) is True
        assert crypto.check_hash_key("otherHash", hashed) is False

    def test_check_hash_key_honours_stored_iterations(self, crypto):
        hashed = CryptoService(hash_iterations=500).hash_key("secret")

        assert crypto.check_hash_key("secret", hashed) is True

    @pytest.mark.parametrize("hashed", [
        "",
        "plain",
        "md5$1000$c2FsdA==$ZGlnZXN0",
        "pbkdf2_sha256$notanint$c2FsdA==$ZGlnZXN0",
        "pbkdf2_sha256$1000$!!!$ZGlnZXN0",
    ])
    def test_check_hash_key_malformed(self, crypto, hashed):
        assert crypto.check_hash_key("secret", hashed) is False


class TestKeyDerivation:
    """Test HKDF key derivation"""

    def test_derive_key_deterministic(self):
        first = CryptoService.derive_key(b"session-1", "ctx")
        second = CryptoService.derive_key(b"session-1", "ctx")

        assert first == second
        assert len(first) == 32

    def test_derive_key_context_separation(self):
        assert (
            CryptoService.derive_key(b"session-1", "a")
            != CryptoService.derive_key(b"session-1", "b")
        )

    def test_derived_key_seals_vaults(self, crypto):
        key = CryptoService.derive_key(b"session-1", "ctx")
        vault = crypto.seal(b"payload", key)

        assert crypto.unseal(vault, CryptoService.derive_key(b"session-1", "ctx")) == b"payload"
