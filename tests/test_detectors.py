from types import SimpleNamespace

import cv2
import numpy as np
import pytest

from detectors.camera import OpenCvCamera
from detectors.face_detect import HaarFaceDetector
from detectors.yolo_objects import YoloObjectDetector
from providers import DeviceBusy, DeviceNotFound, InsecureContext, Unsupported, require_secure_origin
from signals import FaceBox


class FakeCascade:
    def __init__(self, boxes):
        self.boxes = boxes
        self.kwargs = None

    def detectMultiScale(self, gray, **kwargs):
        self.kwargs = kwargs
        assert gray.ndim == 2
        return self.boxes


class TestHaarFaceDetector:
    def test_returns_face_boxes(self):
        cascade = FakeCascade(np.array([[10, 20, 30, 40], [100, 100, 50, 50]]))
        det = HaarFaceDetector(detector=cascade)
        faces = det.estimate_faces(np.zeros((480, 640, 3), dtype=np.uint8))
        assert faces == [FaceBox(10, 20, 30, 40), FaceBox(100, 100, 50, 50)]
        assert cascade.kwargs["minNeighbors"] == 5

    def test_no_faces(self):
        det = HaarFaceDetector(detector=FakeCascade(()))
        assert det.estimate_faces(np.zeros((48, 64, 3), dtype=np.uint8)) == []

    def test_empty_frame(self):
        det = HaarFaceDetector(detector=FakeCascade(np.array([[0, 0, 1, 1]])))
        assert det.estimate_faces(np.zeros((0, 0, 3), dtype=np.uint8)) == []


def _box(cls, conf, xyxy):
    return SimpleNamespace(cls=[cls], conf=[conf], xyxy=[np.array(xyxy, dtype=float)])


class FakeYolo:
    def __init__(self, boxes):
        self.result = SimpleNamespace(boxes=boxes, names={0: "person", 67: "cell phone", 73: "book"})
        self.calls = []

    def predict(self, frame, conf, verbose):
        self.calls.append(conf)
        return [self.result]


class TestYoloObjectDetector:
    def test_maps_coco_labels_and_boxes(self):
        model = FakeYolo([_box(73, 0.7, [0, 0, 10, 20]), _box(67, 0.9, [5, 5, 25, 45])])
        det = YoloObjectDetector(model=model, conf=0.4)
        objs = det.detect(np.zeros((10, 10, 3)))
        assert [o.label for o in objs] == ["cell phone", "book"]
        assert objs[0].score == pytest.approx(0.9)
        assert objs[0].bbox == (5, 5, 20, 40)
        assert model.calls == [0.4]

    def test_no_boxes(self):
        det = YoloObjectDetector(model=FakeYolo(None))
        assert det.detect(np.zeros((10, 10, 3))) == []


class FakeCap:
    def __init__(self, opened=True, reads=(True,)):
        self.opened = opened
        self.reads = list(reads)
        self.released = False
        self.props = {}

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value

    def read(self):
        ok = self.reads.pop(0) if self.reads else False
        return ok, (np.zeros((4, 4, 3), dtype=np.uint8) if ok else None)

    def release(self):
        self.released = True


class TestOpenCvCamera:
    def test_missing_device(self):
        cam = OpenCvCamera(opener=lambda index: FakeCap(opened=False))
        with pytest.raises(DeviceNotFound):
            cam.acquire()

    def test_busy_device_is_released(self):
        cap = FakeCap(reads=(False,))
        cam = OpenCvCamera(opener=lambda index: cap)
        with pytest.raises(DeviceBusy):
            cam.acquire()
        assert cap.released

    def test_stream_reads_frames(self):
        cap = FakeCap(reads=(True, True, False))
        stream = OpenCvCamera(opener=lambda index: cap).acquire()
        assert stream.read().shape == (4, 4, 3)
        with pytest.raises(DeviceBusy):
            stream.read()
        stream.release()
        assert cap.released

    def test_missing_backend_is_unsupported(self):
        def opener(index):
            raise cv2.error("no capture backend")

        with pytest.raises(Unsupported) as exc:
            OpenCvCamera(opener=opener).acquire()
        assert "not supported" in str(exc.value)


class TestSecureOrigin:
    @pytest.mark.parametrize("origin", [
        None,
        "",
        "https://proctor.example.com",
        "http://localhost:8501",
        "http://127.0.0.1:8501",
        "http://[::1]:8501",
    ])
    def test_allowed(self, origin):
        require_secure_origin(origin)

    def test_plain_http_on_remote_host(self):
        with pytest.raises(InsecureContext) as exc:
            require_secure_origin("http://10.0.0.5:8501")
        assert "HTTPS" in str(exc.value)
