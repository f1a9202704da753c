import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

OBJECTS_OF_INTEREST = frozenset({"cell phone", "book", "laptop", "keyboard", "remote"})


@dataclass(frozen=True)
class Thresholds:
    look_away_ms: int = 5000
    absence_ms: int = 10000
    gaze_radius: float = 0.35
    object_min_score: float = 0.6
    objects_of_interest: frozenset = OBJECTS_OF_INTEREST


@dataclass
class Settings:
    """Runtime settings for one monitoring process."""
    sample_hz: float = 5.0
    clock_interval_ms: int = 250
    provider_timeout_s: float = 1.0
    camera_index: int = 0
    yolo_weights: str = "models/yolov8n.pt"
    yolo_conf: float = 0.35
    thresholds: Thresholds = field(default_factory=Thresholds)

    @property
    def sample_interval_s(self) -> float:
        return 1.0 / self.sample_hz

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """Build settings from PROCTOR_* variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        base = cls()
        t = base.thresholds
        thresholds = Thresholds(
            look_away_ms=_read(env, "PROCTOR_LOOK_AWAY_MS", int, t.look_away_ms),
            absence_ms=_read(env, "PROCTOR_ABSENCE_MS", int, t.absence_ms),
            gaze_radius=t.gaze_radius,
            object_min_score=_read(env, "PROCTOR_OBJECT_MIN_SCORE", float, t.object_min_score),
        )
        sample_hz = _read(env, "PROCTOR_SAMPLE_HZ", float, base.sample_hz)
        if sample_hz <= 0:
            logger.warning("Ignoring non-positive PROCTOR_SAMPLE_HZ=%s", sample_hz)
            sample_hz = base.sample_hz
        return cls(
            sample_hz=sample_hz,
            clock_interval_ms=base.clock_interval_ms,
            provider_timeout_s=_read(env, "PROCTOR_PROVIDER_TIMEOUT_S", float, base.provider_timeout_s),
            camera_index=_read(env, "PROCTOR_CAMERA_INDEX", int, base.camera_index),
            yolo_weights=env.get("PROCTOR_YOLO_WEIGHTS") or base.yolo_weights,
            yolo_conf=_read(env, "PROCTOR_YOLO_CONF", float, base.yolo_conf),
            thresholds=thresholds,
        )


def _read(env, name, cast, default):
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return cast(str(raw).strip())
    except ValueError:
        logger.warning("Invalid value for %s: %r, using %r", name, raw, default)
        return default
