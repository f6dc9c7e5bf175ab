from __future__ import annotations

from typing import Protocol, runtime_checkable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..errors import KeyTypeError, SigningError

SIGNATURE_ALGORITHM = "SHA256withRSA"


@runtime_checkable
class Signer(Protocol):
    algorithm: str

    def sign(self, data: bytes) -> bytes: ...


def require_rsa_key(key) -> rsa.RSAPrivateKey:
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyTypeError(f"expected RSA private key, got {type(key).__name__}")
    return key


class RsaSigner:
    """Signer bound to an in-memory RSA private key.

    The key type is checked once, here; a constructed ``RsaSigner`` always
    holds RSA key material.
    """

    algorithm = SIGNATURE_ALGORITHM

    def __init__(self, private_key):
        self._key = require_rsa_key(private_key)
        try:
            key_size = self._key.key_size
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise SigningError("RSA key material is unusable") from exc
        if not key_size or key_size <= 0:
            raise SigningError("RSA key material is empty")
        self._key_size = key_size

    def __repr__(self) -> str:
        return f"RsaSigner(key_size={self._key_size})"

    @property
    def signature_size(self) -> int:
        return (self._key_size + 7) // 8

    def public_key(self) -> rsa.RSAPublicKey:
        return self._key.public_key()

    def sign(self, data: bytes) -> bytes:
        try:
            return self._key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise SigningError(f"{self.algorithm} signing failed: {exc}") from exc


__all__ = ["Signer", "RsaSigner", "require_rsa_key", "SIGNATURE_ALGORITHM"]
