import math
from dataclasses import dataclass, field
from typing import Sequence, Tuple


@dataclass(frozen=True)
class FaceBox:
    """Face box in frame pixels, top-left origin."""
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass(frozen=True)
class ScoredObject:
    label: str
    score: float
    bbox: Tuple[float, float, float, float]  # x, y, w, h


@dataclass(frozen=True)
class Sample:
    """One tick's perception result."""
    frame_width: float
    frame_height: float
    faces: Tuple[FaceBox, ...] = field(default_factory=tuple)
    objects: Tuple[ScoredObject, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FocusSignal:
    face_present: bool = False
    multiple_faces: bool = False
    looking_away: bool = False


def main_face(faces: Sequence[FaceBox]) -> FaceBox:
    """Largest face by area; the first one wins on ties."""
    best = faces[0]
    for f in faces[1:]:
        if f.area > best.area:
            best = f
    return best


def gaze_offset(face: FaceBox, frame_width: float, frame_height: float) -> Tuple[float, float]:
    """Face center offset from frame center, normalized by half the frame size."""
    half_w = frame_width / 2
    half_h = frame_height / 2
    cx, cy = face.center
    dx = (cx - half_w) / half_w if half_w else 0.0
    dy = (cy - half_h) / half_h if half_h else 0.0
    return dx, dy


def summarize_faces(faces: Sequence[FaceBox], frame_width: float, frame_height: float,
                    radius: float = 0.35) -> FocusSignal:
    if not faces:
        return FocusSignal()
    dx, dy = gaze_offset(main_face(faces), frame_width, frame_height)
    # strictly outside the radius counts as looking away
    looking_away = math.hypot(dx, dy) > radius
    return FocusSignal(face_present=True, multiple_faces=len(faces) > 1, looking_away=looking_away)
