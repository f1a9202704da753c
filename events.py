import csv
import io
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple

CSV_HEADER = ["time", "type", "detail"]


class EventType(str, Enum):
    FOCUS_LOST = "FOCUS_LOST"
    NO_FACE = "NO_FACE"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    OBJECT = "OBJECT"
    META = "META"
    SESSION_PAUSED = "SESSION_PAUSED"
    SESSION_RESUMED = "SESSION_RESUMED"
    SESSION_ENDED = "SESSION_ENDED"


BOOKKEEPING = frozenset({
    EventType.META,
    EventType.SESSION_PAUSED,
    EventType.SESSION_RESUMED,
    EventType.SESSION_ENDED,
})


@dataclass(frozen=True)
class Event:
    time_ms: int
    type: EventType
    detail: str


class LogClosedError(RuntimeError):
    pass


class EventLog:
    """Append-only, chronologically ordered record of session events.

    Timestamps come from ``clock``, which must return milliseconds elapsed
    since the session started.
    """

    def __init__(self, clock: Callable[[], int]):
        self._clock = clock
        self._events: List[Event] = []
        self._closed = False

    def append(self, type: EventType, detail: str) -> None:
        if self._closed:
            raise LogClosedError(f"event log is closed, dropping {type.value}")
        t = max(0, int(self._clock()))
        self._events.append(Event(time_ms=t, type=EventType(type), detail=detail))

    def freeze(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def events(self) -> Tuple[Event, ...]:
        return tuple(self._events)

    def count(self, type: EventType) -> int:
        return sum(1 for e in self._events if e.type == type)

    def rows(self) -> List[List[str]]:
        return [_row(e) for e in self._events]

    def to_csv(self) -> str:
        return to_csv(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(tuple(self._events))

    def __len__(self) -> int:
        return len(self._events)


def format_time(ms: int) -> str:
    total = max(0, int(ms) // 1000)
    hours, rem = divmod(total, 3600)
    mm, ss = divmod(rem, 60)
    if hours:
        return f"{hours:02d}:{mm:02d}:{ss:02d}"
    return f"{mm:02d}:{ss:02d}"


def parse_time(text: str) -> int:
    """Inverse of format_time, to one-second resolution."""
    parts = [int(p) for p in text.strip().split(":")]
    if len(parts) == 2:
        hours, (mm, ss) = 0, parts
    elif len(parts) == 3:
        hours, mm, ss = parts
    else:
        raise ValueError(f"unrecognised time {text!r}")
    return ((hours * 60 + mm) * 60 + ss) * 1000


def _row(e: Event) -> List[str]:
    return [format_time(e.time_ms), e.type.value, e.detail.replace(",", ";")]


def to_csv(events) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for e in events:
        writer.writerow(_row(e))
    return buf.getvalue()


def parse_csv(text: str) -> List[Event]:
    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if header != CSV_HEADER:
        raise ValueError(f"unexpected header {header!r}")
    return [Event(time_ms=parse_time(t), type=EventType(kind), detail=detail)
            for t, kind, detail in reader]


def report_filename(prefix: str = "proctoring_report", now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).isoformat(timespec="milliseconds")
    return f"{prefix}_{stamp.replace(':', '-').replace('.', '-')}.csv"
