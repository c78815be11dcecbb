"""Export queue that turns finalized call sessions into uploaded recordings."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

from .config import ExportConfig, IngestConfig
from .delivery import CallDeliverer
from .errors import EncodingError
from .models import CallSession, ExportArtifact, ExporterRuntimeState
from .telemetry import (
    ExportDroppedEvent,
    ExportFailedEvent,
    ExportQueueGauge,
    NullTelemetrySink,
    TelemetrySink,
)
from .wav import RADIO_PCM, duration_seconds, encode_wav

logger = logging.getLogger(__name__)


def artifact_filename(session: CallSession, finished_at: datetime) -> str:
    """Return ``call_<src>-<dst>_<UTC yyyyMMddHHmmss>.wav`` for *session*."""
    stamp = finished_at.astimezone(UTC).strftime("%Y%m%d%H%M%S")
    return f"call_{session.identity.key}_{stamp}.wav"


def build_artifact(
    session: CallSession,
    ingest: IngestConfig,
    *,
    finished_at: datetime | None = None,
) -> ExportArtifact:
    """Encode *session* audio and attach the upload metadata.

    The capture time is *finished_at*, else the time the session was finalized.
    """
    captured_at = finished_at or session.ended_at or datetime.now(UTC)
    pcm = session.pcm
    if len(pcm) % RADIO_PCM.block_align:
        logger.warning(
            "Call %s has %d PCM bytes, not a whole number of samples; encoding as-is",
            session.identity,
            len(pcm),
        )
    return ExportArtifact(
        filename=artifact_filename(session, captured_at),
        audio=encode_wav(pcm),
        source_id=session.identity.source_id,
        destination_id=session.identity.destination_id,
        frequency=session.channel,
        captured_at=captured_at,
        system_id=ingest.system_id,
        system_label=session.channel if ingest.system_label is None else ingest.system_label,
    )


class CallExporter:
    """Bounded queue of finished calls drained by a fixed pool of export workers.

    ``submit`` never waits: a call that arrives while the queue is full is
    dropped and reported. Each worker encodes the call, optionally spools the
    WAV file to disk, and delivers it, retrying up to ``max_attempts`` times.
    Failures end that call's export only.
    """

    def __init__(
        self,
        deliverer: CallDeliverer,
        ingest: IngestConfig,
        config: ExportConfig | None = None,
        *,
        telemetry: TelemetrySink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Create an exporter that hands artifacts to *deliverer*."""
        self._deliverer = deliverer
        self._ingest = ingest
        self._config = config or ExportConfig()
        self._telemetry = telemetry or NullTelemetrySink()
        self._sleep = sleep
        self._queue: asyncio.Queue[CallSession] = asyncio.Queue(
            maxsize=self._config.queue_maxsize
        )
        self._workers: list[asyncio.Task[None]] = []
        self._in_flight = 0
        self._delivered = 0
        self._failed = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        """Return ``True`` while worker tasks are active."""
        return bool(self._workers)

    def start(self) -> None:
        """Spawn the export workers if they are not already running."""
        if self._workers:
            return
        if self._config.spool_dir is not None:
            self._config.spool_dir.mkdir(parents=True, exist_ok=True)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"rdio-export-{index}")
            for index in range(self._config.workers)
        ]
        logger.info("Started %d export worker(s)", len(self._workers))

    def submit(self, session: CallSession) -> bool:
        """Queue *session* for export, returning ``False`` when it had to be dropped."""
        try:
            self._queue.put_nowait(session)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.error(
                "Export queue full (%d pending); dropping call %s",
                self._queue.qsize(),
                session.identity,
            )
            self._telemetry.record_event(
                ExportDroppedEvent(
                    source_id=session.identity.source_id,
                    destination_id=session.identity.destination_id,
                    queue_depth=self._queue.qsize(),
                )
            )
            return False
        self._record_gauge()
        return True

    async def join(self) -> None:
        """Wait until every queued call has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain queued exports within the shutdown timeout, then stop the workers."""
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._config.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "Export queue did not drain within %.1fs; %d call(s) abandoned",
                self._config.shutdown_timeout,
                self._queue.qsize() + self._in_flight,
            )
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        logger.info("Export workers stopped")

    def snapshot(self) -> ExporterRuntimeState:
        """Return a runtime snapshot of the export queue."""
        return ExporterRuntimeState(
            queue_depth=self._queue.qsize(),
            queue_capacity=self._config.queue_maxsize,
            in_flight=self._in_flight,
            delivered=self._delivered,
            failed=self._failed,
            dropped=self._dropped,
        )

    async def export(self, session: CallSession) -> bool:
        """Encode and deliver *session*, returning whether the upload succeeded."""
        try:
            artifact = build_artifact(session, self._ingest)
        except EncodingError as exc:
            self._record_failure(session, attempts=0, exc=exc)
            return False

        audio_path: Path | None = None
        if self._config.spool_dir is not None:
            try:
                audio_path = await self._spool(artifact)
            except OSError as exc:
                self._record_failure(session, attempts=0, exc=exc)
                return False

        logger.info(
            "Call ended. Sending to API: %s (%.1fs, %d frame(s), channel %s)",
            artifact.filename,
            duration_seconds(session.buffer),
            session.frame_count,
            artifact.frequency,
        )
        backoff = self._config.initial_backoff
        for attempt in range(1, self._config.max_attempts + 1):
            if await self._deliverer.deliver(artifact, audio_path=audio_path):
                self._delivered += 1
                logger.info("Call %s uploaded successfully.", artifact.filename)
                if audio_path is not None:
                    audio_path.unlink(missing_ok=True)
                return True
            if attempt < self._config.max_attempts:
                logger.warning(
                    "Upload of %s failed (attempt %d/%d); retrying in %.1fs",
                    artifact.filename,
                    attempt,
                    self._config.max_attempts,
                    backoff,
                )
                await self._sleep(backoff)
                backoff = min(backoff * 2.0, self._config.max_backoff)

        self._failed += 1
        logger.error("Call %s failed to upload.", artifact.filename)
        self._telemetry.record_event(
            ExportFailedEvent(
                source_id=artifact.source_id,
                destination_id=artifact.destination_id,
                attempts=self._config.max_attempts,
                error_type="DeliveryFailed",
            )
        )
        return False

    async def _worker(self) -> None:
        while True:
            session = await self._queue.get()
            self._in_flight += 1
            try:
                await self.export(session)
            except Exception as exc:
                logger.exception("Unexpected failure exporting call %s", session.identity)
                self._record_failure(session, attempts=0, exc=exc)
            finally:
                self._in_flight -= 1
                self._queue.task_done()
                self._record_gauge()

    async def _spool(self, artifact: ExportArtifact) -> Path:
        assert self._config.spool_dir is not None
        target = _dedupe_path(self._config.spool_dir / artifact.filename)
        await asyncio.to_thread(target.write_bytes, artifact.audio)
        logger.debug("Spooled %s to %s", artifact.filename, target)
        return target

    def _record_failure(self, session: CallSession, *, attempts: int, exc: Exception) -> None:
        self._failed += 1
        logger.error("Export of call %s abandoned: %s", session.identity, exc)
        self._telemetry.record_event(
            ExportFailedEvent(
                source_id=session.identity.source_id,
                destination_id=session.identity.destination_id,
                attempts=attempts,
                error_type=exc.__class__.__name__,
                message=str(exc),
            )
        )

    def _record_gauge(self) -> None:
        self._telemetry.record_metric(
            ExportQueueGauge(depth=self._queue.qsize(), in_flight=self._in_flight)
        )


def _dedupe_path(candidate: Path) -> Path:
    """Return a unique path by appending a numeric suffix when needed."""
    if not candidate.exists():
        return candidate
    stem = candidate.stem
    suffix = candidate.suffix
    parent = candidate.parent
    for index in range(1, 10_000):
        attempt = parent / f"{stem}_{index}{suffix}"
        if not attempt.exists():
            return attempt
    return parent / f"{stem}_{secrets.token_hex(4)}{suffix}"  # pragma: no cover - fallback
