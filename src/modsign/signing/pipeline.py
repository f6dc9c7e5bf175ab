"""Module signing pipeline: load -> sign -> finalize -> write.

Every non-directory entry of the input module is signed (SHA256withRSA) and
recorded in ``signatures.properties`` under its path with one leading "/".
The certificate chain is embedded verbatim as ``certificates.p7b``. All other
entries, directories included, are carried over unchanged and in order.

A run either produces a complete signed module or nothing: the output is
written atomically and any failure aborts the whole run.
"""
from __future__ import annotations

import contextlib
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Sequence

from ..archive.zipmap import Archive
from ..crypto.signer import RsaSigner, Signer
from ..manifest.model import CERTIFICATES_PATH, MANIFEST_PATH, RESERVED_PATHS, SigningManifest, manifest_key
from ..utils.logging import get_logger
from .observers import SigningObserver

log = get_logger("pipeline")


class PipelineState(Enum):
    IDLE = "idle"
    LOADED = "loaded"
    SIGNING = "signing"
    FINALIZING = "finalizing"
    WRITTEN = "written"
    FAILED = "failed"


@dataclass
class SignedModule:
    archive: Archive
    manifest: SigningManifest


class ModuleSigner:
    def __init__(self, signer: Signer, certificate_chain: bytes, observers: Sequence[SigningObserver] = ()):
        self.signer = signer
        self.certificate_chain = bytes(certificate_chain)
        self.observers = list(observers)
        self.state = PipelineState.IDLE

    @classmethod
    def for_key(cls, private_key, certificate_chain: bytes, observers: Sequence[SigningObserver] = ()) -> "ModuleSigner":
        """Build a signer for ``private_key``; non-RSA keys raise KeyTypeError before any I/O."""
        return cls(RsaSigner(private_key), certificate_chain, observers)

    @contextlib.contextmanager
    def _run(self, source: str) -> Iterator[None]:
        self.state = PipelineState.IDLE
        for o in self.observers:
            o.run_started(source)
        try:
            yield
        except Exception:
            self.state = PipelineState.FAILED
            for o in self.observers:
                o.run_finished(False)
            raise
        for o in self.observers:
            o.run_finished(True)

    def sign_archive(self, source: Archive) -> SignedModule:
        """Sign every file entry of ``source`` into a new output archive.

        ``source`` is not modified. Entries already sitting at the manifest or
        certificate paths (a previously signed module) are dropped and
        regenerated, so ``signatures.properties`` and ``certificates.p7b`` are
        never manifest keys; a verifier must skip those two paths.
        """
        self.state = PipelineState.SIGNING
        output = Archive()
        manifest = SigningManifest()
        try:
            for entry in source.entries():
                if entry.path in RESERVED_PATHS:
                    log.warning("replacing existing %s", entry.path)
                    continue
                output.put(entry.path, entry)
                if entry.is_directory:
                    continue
                signature = self.signer.sign(entry.content)
                b64 = manifest.add(entry.path, signature)
                for o in self.observers:
                    o.entry_signed(manifest_key(entry.path), entry, signature, b64)

            self.state = PipelineState.FINALIZING
            output.put_bytes(MANIFEST_PATH, manifest.to_bytes())
            output.put_bytes(CERTIFICATES_PATH, self.certificate_chain)
        except Exception:
            self.state = PipelineState.FAILED
            raise
        return SignedModule(archive=output, manifest=manifest)

    def sign_bytes(self, module: bytes) -> bytes:
        with self._run("<bytes>"):
            source = Archive.load(module)
            self.state = PipelineState.LOADED
            signed = self.sign_archive(source)
            data = signed.archive.serialize()
            self.state = PipelineState.WRITTEN
        return data

    def sign_module(self, module_in, module_out) -> SignedModule:
        with self._run(str(module_in)):
            source = Archive.from_file(module_in)
            self.state = PipelineState.LOADED
            signed = self.sign_archive(source)
            signed.archive.write_to_file(module_out)
            self.state = PipelineState.WRITTEN
        log.info("signed %d entries: %s -> %s", len(signed.manifest), module_in, module_out)
        return signed
