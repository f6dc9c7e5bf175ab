from __future__ import annotations

import time

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest, write_to_textfile


class SigningMetrics:
    def __init__(self):
        self.registry = CollectorRegistry()
        self.entries_signed = Counter(
            "modsign_entries_signed_total",
            "Archive entries signed.",
            registry=self.registry,
        )
        self.entry_bytes = Histogram(
            "modsign_entry_bytes",
            "Size of signed entry content (bytes).",
            buckets=(0, 256, 1024, 4096, 16384, 65536, 262144, 1048576, 4194304, 16777216),
            registry=self.registry,
        )
        self.signature_bytes = Histogram(
            "modsign_signature_bytes",
            "Size of produced signatures (bytes).",
            buckets=(128, 256, 384, 512, 768, 1024),
            registry=self.registry,
        )
        self.runs = Counter(
            "modsign_runs_total",
            "Signing runs by result.",
            ["result"],
            registry=self.registry,
        )
        self.run_duration = Gauge(
            "modsign_run_duration_seconds",
            "Wall time of the last signing run.",
            registry=self.registry,
        )
        self._started: float | None = None

    def run_started(self) -> None:
        self._started = time.monotonic()

    def run_finished(self, ok: bool) -> None:
        self.runs.labels(result="ok" if ok else "fail").inc()
        if self._started is not None:
            self.run_duration.set(time.monotonic() - self._started)
            self._started = None

    def observe_entry(self, content_size: int, signature_size: int) -> None:
        self.entries_signed.inc()
        self.entry_bytes.observe(content_size)
        self.signature_bytes.observe(signature_size)

    def value(self, name: str, labels: dict | None = None) -> float | None:
        return self.registry.get_sample_value(name, labels or {})

    def latest(self) -> bytes:
        return generate_latest(self.registry)

    def write_textfile(self, path) -> None:
        write_to_textfile(str(path), self.registry)
