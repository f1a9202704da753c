import logging

import cv2

from providers import DeviceBusy, DeviceNotFound, Unsupported

logger = logging.getLogger(__name__)


class CameraStream:
    def __init__(self, cap):
        self.cap = cap

    def read(self):
        ok, frame = self.cap.read()
        if not ok:
            raise DeviceBusy("Camera stopped delivering frames.")
        return frame

    def release(self):
        self.cap.release()


class OpenCvCamera:
    """Local webcam capture provider."""

    def __init__(self, index: int = 0, width: int = 1280, height: int = 720, opener=cv2.VideoCapture):
        self.index = index
        self.width = width
        self.height = height
        self._open = opener

    def acquire(self) -> CameraStream:
        try:
            cap = self._open(self.index)
        except cv2.error as e:
            raise Unsupported(f"Camera access not supported on this platform: {e}") from e
        if cap is None or not cap.isOpened():
            raise DeviceNotFound()
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        ok, _ = cap.read()
        if not ok:
            cap.release()
            raise DeviceBusy()
        logger.info("Camera %d opened", self.index)
        return CameraStream(cap)
