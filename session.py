"""Session lifecycle: Idle -> Running <-> Paused -> Stopped.

One ``SessionController`` drives one camera and its providers. Every
``start()`` builds a fresh ``Session`` (new id, empty log, reset timers);
stopped sessions are kept in ``controller.archive``.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from config import Settings
from events import Event, EventLog, EventType, format_time
from logic import ProctorState
from providers import (
    AcquisitionError,
    CaptureProvider,
    Coverage,
    FaceProvider,
    ModelUnavailableError,
    ObjectProvider,
    ProbeResult,
    ProbeStatus,
)
from scoring import SessionSummary, summarize
from signals import FocusSignal, Sample, summarize_faces

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class InvalidTransition(RuntimeError):
    pass


class ElapsedClock:
    """Milliseconds of active session time; paused spans are not counted."""

    def __init__(self, monotonic: Callable[[], float] = time.monotonic):
        self._now = monotonic
        self._started = None
        self._paused_at = None
        self._paused_total = 0.0
        self._stopped_at = None

    def start(self):
        self._started = self._now()
        self._paused_at = None
        self._paused_total = 0.0
        self._stopped_at = None

    def pause(self):
        if self._paused_at is None:
            self._paused_at = self._now()

    def resume(self):
        if self._paused_at is not None:
            self._paused_total += self._now() - self._paused_at
            self._paused_at = None

    def stop(self):
        if self._stopped_at is None:
            self._stopped_at = self._paused_at if self._paused_at is not None else self._now()

    def elapsed_ms(self) -> int:
        if self._started is None:
            return 0
        if self._stopped_at is not None:
            end = self._stopped_at
        elif self._paused_at is not None:
            end = self._paused_at
        else:
            end = self._now()
        return max(0, int(round((end - self._started - self._paused_total) * 1000)))


@dataclass
class Session:
    id: str
    started_at: datetime
    clock: ElapsedClock
    log: EventLog
    engine: ProctorState
    coverage: Coverage
    candidate: Optional[str] = None
    status: str = "Ready"
    final_summary: Optional[SessionSummary] = None
    last_signal: FocusSignal = field(default_factory=FocusSignal)
    last_probes: Dict[str, ProbeResult] = field(default_factory=dict)

    def summary(self) -> SessionSummary:
        if self.final_summary is not None:
            return self.final_summary
        return summarize(self.log, self.clock.elapsed_ms())


class SessionController:
    def __init__(self, capture: CaptureProvider, face_provider: Optional[FaceProvider] = None,
                 object_provider: Optional[ObjectProvider] = None, settings: Optional[Settings] = None,
                 monotonic: Callable[[], float] = time.monotonic,
                 on_clock: Optional[Callable[[str], None]] = None):
        self.capture = capture
        self.face_provider = face_provider
        self.object_provider = object_provider
        self.settings = settings or Settings()
        self.on_clock = on_clock
        self._monotonic = monotonic
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._stream = None
        # in-flight worker per provider; a timed-out call keeps running in its thread
        self._pending: Dict[str, asyncio.Future] = {}
        self._probe_status: Dict[str, ProbeStatus] = {}
        self.state = SessionState.IDLE
        self.session: Optional[Session] = None
        self.archive: List[Session] = []

    @property
    def coverage(self) -> Coverage:
        return Coverage(faces=self.face_provider is not None, objects=self.object_provider is not None)

    async def start(self, candidate: Optional[str] = None) -> Session:
        if self.state in (SessionState.RUNNING, SessionState.PAUSED):
            raise InvalidTransition(f"cannot start while {self.state.value}")
        coverage = self.coverage
        try:
            stream = await asyncio.to_thread(self.capture.acquire)
        except AcquisitionError as e:
            logger.error("Camera initialization failed: %s", e)
            raise
        if not coverage.any:
            await asyncio.to_thread(stream.release)
            logger.error("No detection model available")
            raise ModelUnavailableError()

        clock = ElapsedClock(self._monotonic)
        session = Session(
            id=uuid.uuid4().hex,
            started_at=datetime.now(),
            clock=clock,
            log=EventLog(clock.elapsed_ms),
            # without a face provider the absence timer stays unarmed
            engine=ProctorState(self.settings.thresholds, start_ms=0 if coverage.faces else None),
            coverage=coverage,
            candidate=candidate or None,
        )
        if not coverage.faces:
            logger.warning("Face detection unavailable for session %s", session.id)
        if not coverage.objects:
            logger.warning("Object detection unavailable for session %s", session.id)

        self._stream = stream
        self._pending.pop("frame", None)
        self._probe_status.clear()
        self.session = session
        clock.start()
        if candidate:
            session.log.append(EventType.META, f"Candidate: {candidate}")
        session.status = "Interview started - Detection active"
        self.state = SessionState.RUNNING
        self._wake.set()
        logger.info("Session %s started (%s)", session.id, coverage.describe())
        return session

    async def pause(self):
        async with self._lock:
            self._require(SessionState.RUNNING, action="pause")
            self.session.clock.pause()
            self.session.log.append(EventType.SESSION_PAUSED, "Session paused")
            self.session.status = "Paused"
            self.state = SessionState.PAUSED
            self._wake.clear()
        logger.info("Session %s paused", self.session.id)

    async def resume(self):
        async with self._lock:
            self._require(SessionState.PAUSED, action="resume")
            self.session.clock.resume()
            self.session.log.append(EventType.SESSION_RESUMED, "Session resumed")
            self.session.status = "Resumed - Detection active"
            self.state = SessionState.RUNNING
            self._wake.set()
        logger.info("Session %s resumed", self.session.id)

    async def stop(self) -> SessionSummary:
        # the lock makes stop wait for an in-flight tick before finalizing
        async with self._lock:
            self._require(SessionState.RUNNING, SessionState.PAUSED, action="stop")
            session = self.session
            session.clock.stop()
            session.log.append(EventType.SESSION_ENDED, "Session ended")
            session.log.freeze()
            session.final_summary = summarize(session.log, session.clock.elapsed_ms())
            session.status = "Stopped"
            self.state = SessionState.STOPPED
            self.archive.append(session)
            stream, self._stream = self._stream, None
            self._wake.set()
        if stream is not None:
            await asyncio.to_thread(stream.release)
        logger.info("Session %s stopped, integrity score %d", session.id, session.final_summary.score)
        return session.final_summary

    def reset(self):
        if self.state in (SessionState.RUNNING, SessionState.PAUSED):
            raise InvalidTransition(f"cannot reset while {self.state.value}")
        self.session = None
        self.state = SessionState.IDLE

    def _require(self, *allowed: SessionState, action: str):
        if self.state not in allowed:
            raise InvalidTransition(f"cannot {action} while {self.state.value}")

    async def tick(self) -> List[Event]:
        """Run one sample through the pipeline. Returns the events it appended."""
        async with self._lock:
            if self.state != SessionState.RUNNING:
                return []
            session = self.session
            sample, probes = await self._sample()
            now = session.clock.elapsed_ms()
            signal = summarize_faces(sample.faces, sample.frame_width, sample.frame_height,
                                     radius=self.settings.thresholds.gaze_radius)
            before = len(session.log)
            for kind, detail in session.engine.update(signal, sample.objects, now):
                session.log.append(kind, detail)
            session.last_signal = signal
            session.last_probes = probes
            session.status = self._status_text(session.coverage, probes, signal)
            return list(session.log.events()[before:])

    async def _sample(self):
        frame_probe = await self._probe("frame", self._stream, "read")
        if frame_probe.status != ProbeStatus.OK:
            return Sample(0, 0), {"frame": frame_probe}

        frame = frame_probe.items[0]
        height, width = frame.shape[:2]
        faces, objects = await asyncio.gather(
            self._probe("face", self.face_provider, "estimate_faces", frame),
            self._probe("object", self.object_provider, "detect", frame),
        )
        probes = {"frame": frame_probe, "face": faces, "object": objects}
        return Sample(width, height, faces.items, objects.items), probes

    async def _probe(self, name: str, provider, method: str, *args) -> ProbeResult:
        if provider is None:
            return ProbeResult.unavailable()
        pending = self._pending.get(name)
        if pending is not None and not pending.done():
            # never run two calls on one model at once
            result = ProbeResult.failed("busy")
        else:
            worker = asyncio.ensure_future(asyncio.to_thread(getattr(provider, method), *args))
            worker.add_done_callback(_consume)
            self._pending[name] = worker
            try:
                items = await asyncio.wait_for(asyncio.shield(worker), timeout=self.settings.provider_timeout_s)
            except asyncio.TimeoutError:
                result = ProbeResult.failed("timeout")
            except Exception as e:
                result = ProbeResult.failed(str(e) or type(e).__name__)
            else:
                if name != "frame":
                    result = ProbeResult.ok(items)
                elif items is None:
                    result = ProbeResult.failed("no frame")
                else:
                    result = ProbeResult.ok((items,))
        self._note(name, result)
        return result

    def _note(self, name: str, result: ProbeResult):
        """Log a provider only when its status changes."""
        previous = self._probe_status.get(name, ProbeStatus.OK)
        self._probe_status[name] = result.status
        if result.status == previous:
            if result.status == ProbeStatus.FAILED:
                logger.debug("%s still failing: %s", name, result.error)
            return
        if result.status == ProbeStatus.FAILED:
            logger.warning("%s provider failed: %s", name.capitalize(), result.error)
        elif result.status == ProbeStatus.OK:
            logger.info("%s provider recovered", name.capitalize())

    @staticmethod
    def _status_text(coverage: Coverage, probes: Dict[str, ProbeResult], signal: FocusSignal) -> str:
        if not coverage.faces:
            return "Face detection unavailable"
        if probes["frame"].status != ProbeStatus.OK:
            return "No camera frame"
        if probes["face"].status == ProbeStatus.FAILED:
            return "Face detection error"
        if not signal.face_present:
            return "No face detected"
        if signal.multiple_faces:
            return "Multiple faces detected"
        if signal.looking_away:
            return "Looking away"
        return "Focused"

    async def run(self):
        """Sample at the configured cadence until the session stops."""
        interval = self.settings.sample_interval_s
        display = None
        if self.on_clock is not None:
            display = asyncio.create_task(self._run_clock())
        try:
            while self.state in (SessionState.RUNNING, SessionState.PAUSED):
                if self.state == SessionState.PAUSED:
                    await self._wake.wait()
                    continue
                started = time.monotonic()
                await self.tick()
                await asyncio.sleep(max(0.0, interval - (time.monotonic() - started)))
        finally:
            if display is not None:
                display.cancel()

    async def _run_clock(self):
        interval = self.settings.clock_interval_ms / 1000
        while self.state in (SessionState.RUNNING, SessionState.PAUSED):
            self.on_clock(format_time(self.session.clock.elapsed_ms()))
            await asyncio.sleep(interval)


def _consume(worker: asyncio.Future):
    # abandoned workers still finish; keep their errors from going unretrieved
    if not worker.cancelled():
        worker.exception()
