"""Perception and capture capabilities consumed by the session controller.

Providers are plain synchronous objects (model inference is blocking); the
controller runs them off the event loop with a per-call timeout. A provider
that is ``None`` at start is unavailable for the whole session, while a
provider that raises or times out on one call only loses that tick. A
provider whose previous call is still running is skipped rather than
called again.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlsplit

from signals import FaceBox, ScoredObject


class AcquisitionError(Exception):
    """Capture could not be started. Fatal to ``start()``, never retried."""
    message = "Camera access failed."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)


class PermissionDenied(AcquisitionError):
    message = "Camera access failed. Please allow camera permissions and try again."


class DeviceNotFound(AcquisitionError):
    message = "Camera access failed. No camera found. Please connect a camera."


class DeviceBusy(AcquisitionError):
    message = "Camera access failed. Camera is being used by another application."


class InsecureContext(AcquisitionError):
    message = "Camera access requires HTTPS. Please use a local server or deploy to HTTPS."


class Unsupported(AcquisitionError):
    message = "Camera access not supported on this platform."


class ModelUnavailableError(RuntimeError):
    def __init__(self):
        super().__init__("Failed to load any AI models. Face and object detection are both unavailable.")


class FrameStream(Protocol):
    def read(self) -> Any: ...

    def release(self) -> None: ...


class CaptureProvider(Protocol):
    def acquire(self) -> FrameStream: ...


class FaceProvider(Protocol):
    def estimate_faces(self, frame) -> Sequence[FaceBox]: ...


class ObjectProvider(Protocol):
    def detect(self, frame) -> Sequence[ScoredObject]: ...


class ProbeStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one provider call within a tick."""
    status: ProbeStatus
    items: Tuple = ()
    error: Optional[str] = None

    @classmethod
    def ok(cls, items) -> "ProbeResult":
        return cls(ProbeStatus.OK, tuple(items or ()))

    @classmethod
    def failed(cls, error: str) -> "ProbeResult":
        return cls(ProbeStatus.FAILED, (), error)

    @classmethod
    def unavailable(cls) -> "ProbeResult":
        return cls(ProbeStatus.UNAVAILABLE)


@dataclass(frozen=True)
class Coverage:
    faces: bool
    objects: bool

    @property
    def any(self) -> bool:
        return self.faces or self.objects

    def describe(self) -> str:
        if self.faces and self.objects:
            return "Face and object detection active"
        if self.faces:
            return "Object detection unavailable - flagging of objects disabled"
        if self.objects:
            return "Face detection unavailable - gaze and absence checks disabled"
        return "No detection available"


LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def require_secure_origin(origin: Optional[str]) -> None:
    """Browser camera access needs HTTPS unless the page is served locally."""
    if not origin:
        return
    parts = urlsplit(origin)
    if parts.scheme == "https" or (parts.hostname or "") in LOCAL_HOSTS:
        return
    raise InsecureContext()
