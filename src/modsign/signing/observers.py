from __future__ import annotations

from ..archive.entry import ArchiveEntry
from ..obs.metrics import SigningMetrics
from ..utils.logging import get_logger


class SigningObserver:
    def run_started(self, source: str) -> None:
        pass

    def entry_signed(self, key: str, entry: ArchiveEntry, signature: bytes, signature_b64: str) -> None:
        pass

    def run_finished(self, ok: bool) -> None:
        pass


class LoggingObserver(SigningObserver):
    """Per-entry progress at DEBUG (shown with --verbose)."""

    def __init__(self, logger=None):
        self.log = logger or get_logger("progress")

    def run_started(self, source: str) -> None:
        self.log.debug("signing module %s", source)

    def entry_signed(self, key: str, entry: ArchiveEntry, signature: bytes, signature_b64: str) -> None:
        self.log.debug("--- signing --- %s (%d bytes)", key, entry.size)
        self.log.debug("signature_b64: %s", signature_b64)


class MetricsObserver(SigningObserver):
    def __init__(self, metrics: SigningMetrics):
        self.metrics = metrics

    def run_started(self, source: str) -> None:
        self.metrics.run_started()

    def entry_signed(self, key: str, entry: ArchiveEntry, signature: bytes, signature_b64: str) -> None:
        self.metrics.observe_entry(entry.size, len(signature))

    def run_finished(self, ok: bool) -> None:
        self.metrics.run_finished(ok)
