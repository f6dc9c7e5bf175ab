from __future__ import annotations


class ModuleSignerError(Exception):
    """Base class for every failure of a signing run."""


class ArchiveReadError(ModuleSignerError):
    """Input module is missing, truncated or not a readable zip container."""


class ArchiveWriteError(ModuleSignerError):
    """Output module could not be written (destination not writable, disk full)."""


class KeyTypeError(ModuleSignerError):
    """Supplied private key is not RSA capable."""


class SigningError(ModuleSignerError):
    """Cryptographic primitive failed or the key material is unusable."""


class KeyStoreError(ModuleSignerError):
    """Keystore could not be opened or holds no key for the requested alias."""
