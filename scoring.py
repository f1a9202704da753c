from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from events import Event, EventType, format_time

DEDUCTIONS = {
    EventType.FOCUS_LOST: 2,
    EventType.NO_FACE: 3,
    EventType.MULTIPLE_FACES: 5,
    EventType.OBJECT: 2,
}


def integrity_score(events: Iterable[Event]) -> int:
    """100 minus weighted deductions, floored at 0. Other event types are free."""
    deductions = sum(DEDUCTIONS.get(e.type, 0) for e in events)
    return max(0, 100 - deductions)


def object_label(detail: str) -> str:
    return detail.split(":")[0].strip()


@dataclass(frozen=True)
class SessionSummary:
    duration_ms: int
    counts: Dict[EventType, int]
    object_labels: Tuple[str, ...]
    score: int

    def count(self, type: EventType) -> int:
        return self.counts.get(type, 0)

    def to_dict(self) -> dict:
        return {
            "duration": format_time(self.duration_ms),
            "duration_ms": self.duration_ms,
            "counts": {k.value: v for k, v in self.counts.items()},
            "object_labels": list(self.object_labels),
            "integrity_score": self.score,
        }

    def report_lines(self) -> List[str]:
        types = ", ".join(self.object_labels) or "None"
        return [
            f"Interview Duration: {format_time(self.duration_ms)}",
            f"Focus Lost: {self.count(EventType.FOCUS_LOST)} | "
            f"No Face: {self.count(EventType.NO_FACE)} | "
            f"Multiple Faces: {self.count(EventType.MULTIPLE_FACES)}",
            f"Suspicious Objects: {self.count(EventType.OBJECT)} (Types: {types})",
            f"Integrity Score: {self.score}",
        ]


def summarize(events: Iterable[Event], duration_ms: int) -> SessionSummary:
    events = list(events)
    counts = {t: 0 for t in EventType}
    labels: List[str] = []
    for e in events:
        counts[e.type] += 1
        if e.type == EventType.OBJECT:
            label = object_label(e.detail)
            if label not in labels:
                labels.append(label)
    return SessionSummary(
        duration_ms=max(0, int(duration_ms)),
        counts=counts,
        object_labels=tuple(labels),
        score=integrity_score(events),
    )
