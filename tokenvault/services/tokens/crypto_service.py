"""
Core Cryptographic Service for TokenVault

Implements the primitives behind token issuance:
- Random token value generation
- Vault sealing/unsealing with Fernet under a session key
- Salted PBKDF2 keyed hashing of caller secrets
- HKDF key derivation for session keys
"""

import secrets
from base64 import urlsafe_b64encode, b64encode, b64decode
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class CryptoError(Exception):
    """Base exception for cryptographic operations"""
    pass


class EncryptionError(CryptoError):
    """Raised when sealing fails"""
    pass


class DecryptionError(CryptoError):
    """Raised when unsealing fails"""
    pass


class CryptoService:
    """
    Cryptographic service for API token issuance.

    Features:
    - 256-bit random token values, hex encoded
    - Fernet vaults (AES-128 in CBC mode with HMAC-SHA256)
    - PBKDF2-HMAC-SHA256 keyed hashes with a random salt per hash
    """

    TOKEN_LENGTH = 32           # 256 bits
    KEY_LENGTH = 32             # session key size
    DEFAULT_SALT_LENGTH = 16    # 128 bits
    PBKDF2_ITERATIONS = 480000  # OWASP 2023 recommendation
    HASH_SCHEME = "pbkdf2_sha256"

    def __init__(self, hash_iterations: int = PBKDF2_ITERATIONS):
        """
        Initialize CryptoService.

        Args:
            hash_iterations: PBKDF2 iteration count used by hash_key
        """
        if hash_iterations <= 0:
            raise ValueError("Hash iterations must be positive")
        self._hash_iterations = hash_iterations

    @property
    def hash_iterations(self) -> int:
        return self._hash_iterations

    def generate_secret(self, length: int = TOKEN_LENGTH) -> bytes:
        """
        Generate cryptographically secure random bytes.

        Args:
            length: Number of random bytes to generate (default: 32)

        Raises:
            ValueError: If length is not positive
        """
        if length <= 0:
            raise ValueError("Secret length must be positive")

        return secrets.token_bytes(length)

    def generate_token(self) -> str:
        """
        Generate a new bearer token value.

        Returns:
            64-character hex string (32 random bytes)
        """
        return secrets.token_hex(self.TOKEN_LENGTH)

    def seal(self, plaintext: bytes, key: bytes) -> str:
        """
        Seal data into a vault using Fernet under the given key.

        Fernet guarantees that the vault cannot be read or modified without
        the key; each call uses a fresh random IV.

        Args:
            plaintext: Data to protect
            key: Raw 32-byte session key

        Returns:
            Printable vault string (URL-safe base64 Fernet token)

        Raises:
            EncryptionError: If the key is invalid or encryption fails
        """
        fernet = self._fernet_for(key, EncryptionError)
        try:
            return fernet.encrypt(plaintext).decode("ascii")
        except Exception as e:
            raise EncryptionError(f"Sealing failed: {e}")

    def unseal(self, vault: str, key: bytes, ttl: Optional[int] = None) -> bytes:
        """
        Open a vault produced by seal().

        Args:
            vault: Vault string
            key: Raw 32-byte session key used when sealing
            ttl: Optional maximum vault age in seconds

        Returns:
            Original plaintext bytes

        Raises:
            DecryptionError: On a wrong key, a tampered vault or an expired ttl
        """
        fernet = self._fernet_for(key, DecryptionError)
        try:
            return fernet.decrypt(vault.encode("ascii"), ttl=ttl)
        except InvalidToken:
            raise DecryptionError("Invalid vault or wrong session key")
        except Exception as e:
            raise DecryptionError(f"Unsealing failed: {e}")

    def hash_key(self, secret: str) -> str:
        """
        Compute a salted keyed hash of a secret.

        Returns:
            Encoded hash "pbkdf2_sha256$<iterations>$<salt>$<digest>"
        """
        salt = self.generate_secret(self.DEFAULT_SALT_LENGTH)
        digest = self._pbkdf2(secret, salt, self._hash_iterations)
        return "$".join([
            self.HASH_SCHEME,
            str(self._hash_iterations),
            b64encode(salt).decode("ascii"),
            b64encode(digest).decode("ascii"),
        ])

    def check_hash_key(self, secret: str, hashed: str) -> bool:
        """
        Verify a secret against a hash produced by hash_key().

        Uses constant-time comparison. Malformed hashes never match.
        """
        try:
            scheme, iterations, salt_b64, digest_b64 = hashed.split("$")
            if scheme != self.HASH_SCHEME:
                return False
            salt = b64decode(salt_b64)
            expected = b64decode(digest_b64)
            computed = self._pbkdf2(secret, salt, int(iterations))
        except ValueError:
            return False

        return secrets.compare_digest(computed, expected)

    @staticmethod
    def derive_key(seed: bytes, context: str) -> bytes:
        """
        Derive a 32-byte key using HKDF-SHA256.

        Args:
            seed: Input key material
            context: Context string for domain separation
        """
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=CryptoService.KEY_LENGTH,
            salt=None,
            info=context.encode("utf-8"),
        )
        return hkdf.derive(seed)

    @staticmethod
    def generate_session_key() -> bytes:
        """Generate a random raw 32-byte session key"""
        return secrets.token_bytes(CryptoService.KEY_LENGTH)

    @staticmethod
    def _pbkdf2(secret: str, salt: bytes, iterations: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(secret.encode("utf-8"))

    @staticmethod
    def _fernet_for(key: bytes, error_cls: type[CryptoError]) -> Fernet:
        if len(key) != CryptoService.KEY_LENGTH:
            raise error_cls(
                f"Session key must be {CryptoService.KEY_LENGTH} bytes, got {len(key)}"
            )
        return Fernet(urlsafe_b64encode(key))
