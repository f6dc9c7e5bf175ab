from __future__ import annotations

import base64
from typing import Dict, Iterator, List, Optional, Tuple

from .properties import dump_properties, parse_properties

MANIFEST_PATH = "signatures.properties"
CERTIFICATES_PATH = "certificates.p7b"
RESERVED_PATHS = (MANIFEST_PATH, CERTIFICATES_PATH)

KEY_PREFIX = "/"


def manifest_key(path: str) -> str:
    """Manifest key for an archive path: one "/" prepended, unconditionally."""
    return KEY_PREFIX + path


class SigningManifest:
    """Ordered mapping of manifest key -> base64 signature.

    Keys are added in archive order and serialized in that order.
    """

    def __init__(self):
        self._signatures: Dict[str, str] = {}

    def add(self, path: str, signature: bytes) -> str:
        key = manifest_key(path)
        if key in self._signatures:
            raise ValueError(f"duplicate manifest entry for {key}")
        b64 = base64.b64encode(signature).decode("ascii")
        self._signatures[key] = b64
        return b64

    def get(self, key: str) -> Optional[str]:
        return self._signatures.get(key)

    def signature_for(self, path: str) -> Optional[bytes]:
        b64 = self._signatures.get(manifest_key(path))
        return base64.b64decode(b64) if b64 is not None else None

    def keys(self) -> List[str]:
        return list(self._signatures)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._signatures.items())

    def __contains__(self, key: object) -> bool:
        return key in self._signatures

    def __len__(self) -> int:
        return len(self._signatures)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def to_properties(self) -> str:
        return dump_properties(self._signatures.items())

    def to_bytes(self) -> bytes:
        return self.to_properties().encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "SigningManifest":
        manifest = cls()
        manifest._signatures.update(parse_properties(data.decode("utf-8")))
        return manifest
