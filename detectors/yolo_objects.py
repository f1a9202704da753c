from signals import ScoredObject


class YoloObjectDetector:
    """COCO object provider backed by an ultralytics YOLO model."""

    def __init__(self, weights: str = "models/yolov8n.pt", conf: float = 0.35, model=None):
        if model is None:
            from ultralytics import YOLO
            model = YOLO(weights)
        self.model = model
        self.conf = conf

    def detect(self, frame_bgr):
        """Return [ScoredObject] with COCO labels and xywh boxes, sorted by score."""
        results = self.model.predict(frame_bgr, conf=self.conf, verbose=False)
        r = results[0]
        if r.boxes is None:
            return []
        names = r.names
        objects = []
        for b in r.boxes:
            cls = int(b.cls[0])
            x1, y1, x2, y2 = b.xyxy[0].tolist()
            objects.append(ScoredObject(
                label=names[cls],
                score=float(b.conf[0]),
                bbox=(x1, y1, x2 - x1, y2 - y1),
            ))
        objects.sort(key=lambda o: o.score, reverse=True)
        return objects
