import asyncio
import logging
import threading
import time
from dataclasses import replace

import streamlit as st

st.set_page_config(page_title="AI Interview Proctor", layout="wide")

try:
    import av
    import cv2
    from streamlit_webrtc import WebRtcMode, webrtc_streamer
except Exception as e:
    st.title("AI-Powered Interview Proctoring")
    st.error("Dependency import failed. Please check the build logs.")
    st.code(str(e))
    st.stop()

from config import Settings
from detectors.camera import OpenCvCamera
from detectors.face_detect import HaarFaceDetector
from detectors.yolo_objects import YoloObjectDetector
from events import report_filename
from providers import AcquisitionError, ModelUnavailableError, PermissionDenied, require_secure_origin
from session import InvalidTransition, SessionController, SessionState

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("proctor.app")

st.title("AI-Powered Interview Proctoring")
st.caption("Webcam -> Haar (faces) + YOLO (objects) -> Debounce rules -> Event log -> Integrity score")

settings = Settings.from_env()
st.sidebar.header("Thresholds")
look_away_s = st.sidebar.number_input("Looking-away event (s)", 1.0, 60.0, settings.thresholds.look_away_ms / 1000, 1.0)
absence_s = st.sidebar.number_input("Absence event (s)", 1.0, 120.0, settings.thresholds.absence_ms / 1000, 1.0)
object_min = st.sidebar.slider("Object confidence", 0.10, 0.95, settings.thresholds.object_min_score, 0.05)
source = st.sidebar.radio("Camera source", ["Browser (WebRTC)", "Local webcam (OpenCV)"])
settings.thresholds = replace(
    settings.thresholds,
    look_away_ms=int(look_away_s * 1000),
    absence_ms=int(absence_s * 1000),
    object_min_score=object_min,
)

st.sidebar.markdown("---")
st.sidebar.info("Ethics: Local processing only. Show 'AI Monitoring Active'.")


@st.cache_resource
def load_face_detector():
    try:
        return HaarFaceDetector()
    except Exception as e:
        logger.warning("Failed to load face detection model: %s", e)
        return None


@st.cache_resource
def load_object_detector(weights, conf):
    try:
        return YoloObjectDetector(weights=weights, conf=conf)
    except Exception as e:
        logger.warning("Failed to load object detection model: %s", e)
        return None


class WebRtcCapture:
    """Capture provider fed by the streamlit-webrtc frame callback."""

    def __init__(self, origin=None, first_frame_timeout: float = 5.0):
        self.lock = threading.Lock()
        self.frame = None
        self.origin = origin
        self.first_frame_timeout = first_frame_timeout

    def push(self, img):
        with self.lock:
            self.frame = img

    def acquire(self):
        require_secure_origin(self.origin)
        deadline = time.monotonic() + self.first_frame_timeout
        while time.monotonic() < deadline:
            with self.lock:
                if self.frame is not None:
                    return self
            time.sleep(0.1)
        raise PermissionDenied("No video received. Allow camera permission and click START on the video panel.")

    def read(self):
        with self.lock:
            return None if self.frame is None else self.frame.copy()

    def release(self):
        with self.lock:
            self.frame = None


class ControllerThread:
    """Runs a SessionController on its own asyncio loop so Streamlit reruns don't block it."""

    def __init__(self, controller: SessionController):
        self.controller = controller
        self.loop = asyncio.new_event_loop()
        self.runner = None
        self.elapsed = "00:00"
        controller.on_clock = self._set_elapsed
        threading.Thread(target=self._run_loop, daemon=True).start()

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def _set_elapsed(self, text):
        self.elapsed = text

    def call(self, coro, timeout=10.0):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def start(self, candidate):
        session = self.call(self.controller.start(candidate))
        self.runner = asyncio.run_coroutine_threadsafe(self.controller.run(), self.loop)
        return session


key = f"runtime::{source}"
if key not in st.session_state:
    capture = WebRtcCapture(st.context.headers.get("Origin")) if source.startswith("Browser") else OpenCvCamera(settings.camera_index)
    face_det = load_face_detector()
    obj_det = load_object_detector(settings.yolo_weights, settings.yolo_conf)
    st.session_state[key] = ControllerThread(SessionController(capture, face_det, obj_det, settings))
runtime = st.session_state[key]
controller = runtime.controller
controller.settings = settings

st.markdown("### AI Monitoring Active (Local Processing Only)")
if controller.face_provider is None:
    st.warning("Face detection unavailable - gaze and absence checks disabled.")
if controller.object_provider is None:
    st.warning(f"Object detection unavailable - check YOLO weights at {settings.yolo_weights}.")

colA, colB = st.columns([2, 1])
candidate = colB.text_input("Candidate Name (optional for report)")
b1, b2, b3, b4 = colB.columns(4)
try:
    if b1.button("Start", disabled=controller.state in (SessionState.RUNNING, SessionState.PAUSED)):
        runtime.start(candidate.strip() or None)
    if b2.button("Pause", disabled=controller.state != SessionState.RUNNING):
        runtime.call(controller.pause())
    if b3.button("Resume", disabled=controller.state != SessionState.PAUSED):
        runtime.call(controller.resume())
    if b4.button("Stop", disabled=controller.state not in (SessionState.RUNNING, SessionState.PAUSED)):
        runtime.call(controller.stop())
except (AcquisitionError, ModelUnavailableError) as e:
    colB.error(f"Initialization failed: {e}")
except InvalidTransition as e:
    colB.warning(str(e))


def video_frame_callback(frame: av.VideoFrame) -> av.VideoFrame:
    img = frame.to_ndarray(format="bgr24")
    runtime.controller.capture.push(img)
    session = runtime.controller.session
    if session is not None:
        cv2.putText(img, f"{session.status} | {runtime.elapsed}", (10, 28),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.75, (255, 255, 255), 2)
    return av.VideoFrame.from_ndarray(img, format="bgr24")


with colA:
    if isinstance(controller.capture, WebRtcCapture):
        webrtc_streamer(
            key="ai-proctor-monitor",
            mode=WebRtcMode.SENDRECV,
            rtc_configuration={
                "iceServers": [
                    {"urls": ["stun:stun.l.google.com:19302"]},
                    {"urls": ["stun:stun1.l.google.com:19302"]},
                ]
            },
            media_stream_constraints={
                "video": {
                    "facingMode": "user",
                    "width": {"ideal": 1280},
                    "height": {"ideal": 720},
                },
                "audio": False,
            },
            video_frame_callback=video_frame_callback,
            async_processing=True,
        )
    else:
        st.info(f"Using local camera #{settings.camera_index}.")

status_box = colB.empty()
summary_box = colB.empty()
logs_box = st.empty()
csv_slot = colB.empty()


def render():
    session = controller.session
    if session is None:
        status_box.info("Ready")
        return
    status_box.markdown(f"**Status:** {session.status} &nbsp; | &nbsp; **Time:** {runtime.elapsed}")
    summary_box.markdown("  \n".join(session.summary().report_lines()))
    rows = session.log.rows()[::-1]
    logs_box.table([{"time": t, "type": k, "detail": d} for t, k, d in rows] or [{"time": "", "type": "", "detail": "No events yet"}])


render()
if controller.session is not None:
    csv_slot.download_button(
        "Download CSV report",
        controller.session.log.to_csv(),
        file_name=report_filename(),
        mime="text/csv",
    )

while controller.state == SessionState.RUNNING:
    render()
    time.sleep(0.5)
