"""Hardware-token signer backed by OpenSC's ``pkcs11-tool``.

The token configuration is read from a SunPKCS11 style file::

    name = MyToken
    library = /usr/lib/softhsm/libsofthsm2.so
    slot = 0            # or: slotListIndex = 0

The configuration is passed explicitly to each run; nothing is registered
process-wide. The private key never leaves the token: every entry is signed by
a ``pkcs11-tool --sign`` invocation using the SHA256-RSA-PKCS mechanism.
"""
from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from ..config import PKCS11_TOOL
from ..errors import KeyStoreError, KeyTypeError, SigningError
from ..utils.logging import get_logger
from .signer import SIGNATURE_ALGORITHM

log = get_logger("pkcs11")

MECHANISM = "SHA256-RSA-PKCS"
# Token PIN travels in this variable ("--pin env:NAME"), never in argv
PIN_ENV = "MODSIGN_PKCS11_PIN"


class Pkcs11Config(BaseModel):
    library: str
    name: str = "token"
    slot: Optional[int] = None
    slot_list_index: Optional[int] = None

    def slot_args(self) -> List[str]:
        if self.slot is not None:
            return ["--slot", str(self.slot)]
        if self.slot_list_index is not None:
            return ["--slot-index", str(self.slot_list_index)]
        return []


_KEYS = {"name": "name", "library": "library", "slot": "slot", "slotlistindex": "slot_list_index"}


def parse_pkcs11_config(text: str) -> Pkcs11Config:
    values = {}
    depth = 0
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        # attribute blocks ({ ... }) carry nothing the tool needs
        depth += line.count("{") - line.count("}")
        if depth > 0 or "{" in line or "}" in line:
            continue
        if "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        field = _KEYS.get(key.lower())
        if field:
            values[field] = value.strip('"')
    if "library" not in values:
        raise KeyStoreError("PKCS#11 configuration has no 'library' entry")
    try:
        return Pkcs11Config(**values)
    except ValueError as exc:
        raise KeyStoreError(f"invalid PKCS#11 configuration: {exc}") from exc


def load_pkcs11_config(path) -> Pkcs11Config:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise KeyStoreError(f"cannot read PKCS#11 configuration {path}: {exc}") from exc
    return parse_pkcs11_config(text)


def _key_types(listing: str) -> List[str]:
    # "Private Key Object; RSA" / "Private Key Object; EC"
    types = []
    for line in listing.splitlines():
        line = line.strip()
        if not line.startswith("Private Key Object;"):
            continue
        words = line.split(";", 1)[1].split()
        types.append(words[0].upper() if words else "")
    return types


class Pkcs11ToolSigner:
    algorithm = SIGNATURE_ALGORITHM

    def __init__(self, config: Pkcs11Config, alias: str, pin: str = "", tool: str = PKCS11_TOOL):
        self.config = config
        self.alias = alias
        self._pin = pin
        self.tool = tool

    def __repr__(self) -> str:
        return f"Pkcs11ToolSigner(token={self.config.name!r}, alias={self.alias!r})"

    @classmethod
    def open(cls, config: Pkcs11Config, alias: str, pin: str = "", tool: str = PKCS11_TOOL) -> "Pkcs11ToolSigner":
        """Return a signer for ``alias`` after checking the token holds an RSA key under it."""
        signer = cls(config, alias, pin, tool)
        log.debug("probing token %s (%s) for key '%s'", config.name, config.library, alias)
        proc = signer._run(["--list-objects", "--type", "privkey", "--label", alias], KeyStoreError)
        types = _key_types(proc.stdout.decode("utf-8", errors="replace"))
        if not types:
            raise KeyStoreError(f"no private key found for alias '{alias}' on token {config.name}")
        if "RSA" not in types:
            raise KeyTypeError(f"key '{alias}' on token {config.name} is {types[0] or 'unknown'}, not RSA")
        return signer

    def _base_cmd(self) -> List[str]:
        cmd = [self.tool, "--module", self.config.library, *self.config.slot_args()]
        if self._pin:
            cmd.extend(["--login", "--pin", f"env:{PIN_ENV}"])
        return cmd

    def _run(self, args: List[str], error) -> subprocess.CompletedProcess:
        env = None
        if self._pin:
            env = dict(os.environ, **{PIN_ENV: self._pin})
        try:
            proc = subprocess.run(self._base_cmd() + args, capture_output=True, check=False, env=env)
        except FileNotFoundError as exc:
            raise error(f"{self.tool} not found (install opensc)") from exc
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise error(f"{self.tool} failed with exit code {proc.returncode}: {stderr}")
        return proc

    def sign(self, data: bytes) -> bytes:
        with tempfile.TemporaryDirectory() as td:
            msg_path = os.path.join(td, "msg.bin")
            sig_path = os.path.join(td, "sig.bin")
            with open(msg_path, "wb") as f:
                f.write(data)
            self._run(
                [
                    "--sign",
                    "--mechanism", MECHANISM,
                    "--label", self.alias,
                    "--input-file", msg_path,
                    "--output-file", sig_path,
                ],
                SigningError,
            )
            try:
                with open(sig_path, "rb") as f:
                    sig = f.read()
            except FileNotFoundError as exc:
                raise SigningError("signature output not produced") from exc
        if not sig:
            raise SigningError("token returned an empty signature")
        return sig
