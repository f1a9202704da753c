import numpy as np
import pytest

from signals import FaceBox, ScoredObject

FRAME_W, FRAME_H = 640, 480


class ManualClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self):
        self.ms = 0

    def advance(self, ms):
        self.ms += ms

    def __call__(self):
        return self.ms / 1000


class FakeStream:
    def __init__(self, fail_reads=0):
        self.released = False
        self.fail_reads = fail_reads

    def read(self):
        if self.fail_reads:
            self.fail_reads -= 1
            raise IOError("frame grab failed")
        return np.zeros((FRAME_H, FRAME_W, 3), dtype=np.uint8)

    def release(self):
        self.released = True


class FakeCapture:
    def __init__(self, error=None):
        self.error = error
        self.streams = []

    def acquire(self):
        if self.error is not None:
            raise self.error
        stream = FakeStream()
        self.streams.append(stream)
        return stream


class ScriptedFaces:
    """Face provider returning whatever ``faces`` is currently set to."""

    def __init__(self, faces=()):
        self.faces = list(faces)
        self.fail = False
        self.calls = 0

    def estimate_faces(self, frame):
        self.calls += 1
        if self.fail:
            raise RuntimeError("face model crashed")
        return list(self.faces)


class ScriptedObjects:
    def __init__(self, objects=()):
        self.objects = list(objects)
        self.fail = False

    def detect(self, frame):
        if self.fail:
            raise RuntimeError("object model crashed")
        return list(self.objects)


def centered_face(size=120):
    return FaceBox((FRAME_W - size) / 2, (FRAME_H - size) / 2, size, size)


def corner_face(size=120):
    return FaceBox(0, 0, size, size)


def phone(score=0.82):
    return ScoredObject("cell phone", score, (10, 10, 50, 90))


@pytest.fixture
def clock():
    return ManualClock()
