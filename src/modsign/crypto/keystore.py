"""Private key loading from keystore files.

Supported containers:
  - PKCS#12 (.p12 / .pfx), alias matched against the bag friendly name
  - PEM (.pem / .key) and DER (.der) private keys; aliases do not apply

Java KeyStore (.jks) files are not readable here; convert them first with
``keytool -importkeystore -deststoretype pkcs12``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from ..errors import KeyStoreError
from ..utils.logging import get_logger
from .signer import RsaSigner

log = get_logger("keystore")

PKCS12_SUFFIXES = {".p12", ".pfx"}
PEM_SUFFIXES = {".pem", ".key"}
DER_SUFFIXES = {".der"}


def _pw(value: Optional[str]) -> Optional[bytes]:
    return value.encode() if value else None


def _alias_matches(friendly_name: Optional[bytes], alias: str) -> bool:
    if friendly_name is None:
        return True
    return friendly_name.decode("utf-8", "replace").lower() == alias.lower()


def _load_pkcs12(data: bytes, path: Path, store_password: str, alias: str, alias_password: str):
    try:
        bundle = pkcs12.load_pkcs12(data, _pw(store_password or alias_password))
    except ValueError as exc:
        raise KeyStoreError(f"cannot open PKCS#12 keystore {path}: wrong password or corrupt file") from exc
    if bundle.key is None:
        raise KeyStoreError(f"no private key found for alias '{alias}'")
    friendly_name = bundle.cert.friendly_name if bundle.cert is not None else None
    if not _alias_matches(friendly_name, alias):
        raise KeyStoreError(f"no private key found for alias '{alias}'")
    return bundle.key


def _load_raw(data: bytes, path: Path, password: str, der: bool):
    loader = serialization.load_der_private_key if der else serialization.load_pem_private_key
    try:
        return loader(data, password=_pw(password))
    except (ValueError, TypeError) as exc:
        raise KeyStoreError(f"cannot load private key {path}: {exc}") from exc


def load_private_key(path, store_password: str = "", alias: str = "", alias_password: str = ""):
    """Return the private key stored under ``alias`` in the keystore at ``path``.

    The key type is not checked here; pass the result to ``RsaSigner``.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in PKCS12_SUFFIXES | PEM_SUFFIXES | DER_SUFFIXES:
        raise KeyStoreError(
            f"unsupported keystore type '{suffix or path.name}'; convert it to PKCS#12 (.p12/.pfx)"
        )
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise KeyStoreError(f"cannot read keystore {path}: {exc}") from exc

    if suffix in PKCS12_SUFFIXES:
        return _load_pkcs12(data, path, store_password, alias, alias_password)
    log.debug("alias '%s' ignored for single-key file %s", alias, path.name)
    return _load_raw(data, path, alias_password or store_password, der=suffix in DER_SUFFIXES)


def load_signer(path, store_password: str = "", alias: str = "", alias_password: str = "") -> RsaSigner:
    return RsaSigner(load_private_key(path, store_password, alias, alias_password))
