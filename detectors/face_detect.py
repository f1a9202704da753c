import cv2

from signals import FaceBox


class HaarFaceDetector:
    """Fast offline face provider using OpenCV Haar cascades."""

    def __init__(self, scaleFactor: float = 1.1, minNeighbors: int = 5, minSize=(60, 60), detector=None):
        if detector is None:
            cascade_path = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
            detector = cv2.CascadeClassifier(cascade_path)
            if detector.empty():
                raise RuntimeError(f"Could not load Haar cascade from {cascade_path}")
        self.detector = detector
        self.scaleFactor = scaleFactor
        self.minNeighbors = minNeighbors
        self.minSize = minSize

    def estimate_faces(self, frame_bgr):
        """Return every face in the frame as FaceBox (top-left, width, height)."""
        if frame_bgr is None or frame_bgr.size == 0:
            return []

        gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY) if frame_bgr.ndim == 3 else frame_bgr
        faces = self.detector.detectMultiScale(
            gray,
            scaleFactor=self.scaleFactor,
            minNeighbors=self.minNeighbors,
            minSize=self.minSize,
        )
        if faces is None or len(faces) == 0:
            return []

        return [FaceBox(float(x), float(y), float(w), float(h)) for x, y, w, h in faces]
