import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from config import Thresholds
from events import EventType
from signals import FocusSignal, ScoredObject

logger = logging.getLogger(__name__)

# (type, detail) pairs waiting to be stamped by the event log
Draft = Tuple[EventType, str]


@dataclass(frozen=True)
class ConditionState:
    active: bool = False
    last_good_ms: Optional[int] = None


@dataclass(frozen=True)
class DebounceState:
    looking_away: ConditionState = field(default_factory=ConditionState)
    absence: ConditionState = field(default_factory=ConditionState)
    multiple_faces: ConditionState = field(default_factory=ConditionState)
    last_face_seen_ms: Optional[int] = None


def _seconds(ms: int) -> str:
    return f"{ms / 1000:g}s"


def flagged_objects(objects: Sequence[ScoredObject], t: Thresholds) -> List[ScoredObject]:
    return [o for o in objects if o.label in t.objects_of_interest and o.score >= t.object_min_score]


def tick(state: DebounceState, signal: FocusSignal, objects: Sequence[ScoredObject],
         now_ms: int, t: Thresholds) -> Tuple[DebounceState, List[Draft]]:
    """Advance the debounce timers by one tick.

    Sustained conditions (looking away, absence) fire once when their timer
    crosses the threshold and re-arm only after the opposite signal is seen.
    Multiple faces fires on the entry edge. Objects of interest are reported
    on every tick they are visible.
    """
    drafts: List[Draft] = []
    away = state.looking_away
    absence = state.absence
    multi = state.multiple_faces
    last_face = state.last_face_seen_ms

    if signal.face_present:
        last_face = now_ms
        if not signal.looking_away:
            away = replace(away, last_good_ms=now_ms)

    if (signal.face_present and signal.looking_away and away.last_good_ms is not None
            and now_ms - away.last_good_ms > t.look_away_ms):
        if not away.active:
            away = replace(away, active=True)
            drafts.append((EventType.FOCUS_LOST, f"User looking away > {_seconds(t.look_away_ms)}"))
    elif not signal.looking_away:
        away = replace(away, active=False)

    if not signal.face_present and last_face is not None and now_ms - last_face > t.absence_ms:
        if not absence.active:
            absence = replace(absence, active=True)
            drafts.append((EventType.NO_FACE, f"No face detected > {_seconds(t.absence_ms)}"))
    elif signal.face_present:
        absence = replace(absence, active=False, last_good_ms=now_ms)

    if signal.multiple_faces:
        if not multi.active:
            multi = replace(multi, active=True)
            drafts.append((EventType.MULTIPLE_FACES, "Multiple faces detected"))
    else:
        multi = replace(multi, active=False, last_good_ms=now_ms)

    for o in flagged_objects(objects, t):
        drafts.append((EventType.OBJECT, f"{o.label}: {round(o.score * 100)}%"))

    for kind, detail in drafts:
        logger.debug("t=%dms %s %s", now_ms, kind.value, detail)

    new_state = DebounceState(
        looking_away=away,
        absence=absence,
        multiple_faces=multi,
        last_face_seen_ms=last_face,
    )
    return new_state, drafts


class ProctorState:
    """Rule-based timing state machine.

    The absence timer is armed at ``start_ms`` so a candidate who never
    shows up is still reported once the absence threshold passes.
    """
    def __init__(self, thresholds: Thresholds, start_ms: Optional[int] = 0):
        self.t = thresholds
        self.start_ms = start_ms
        self.reset()

    def reset(self):
        self.state = DebounceState(last_face_seen_ms=self.start_ms)

    def update(self, signal: FocusSignal, objects: Sequence[ScoredObject], now_ms: int) -> List[Draft]:
        self.state, drafts = tick(self.state, signal, objects, now_ms, self.t)
        return drafts
