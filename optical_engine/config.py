"""
Engine configuration.

Values are read from the environment (optionally via a ``.env`` file) once,
at import time.
"""

import os
from dotenv import load_dotenv

load_dotenv()


# Landmark strategy: "mediapipe" (trained model) or "heuristic"
LANDMARK_STRATEGY = os.getenv("OPTICAL_LANDMARK_STRATEGY", "mediapipe")

FACE_LANDMARKER_MODEL = os.getenv(
    "OPTICAL_FACE_LANDMARKER_MODEL",
    os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "face_landmarker.task"))
)
FACE_LANDMARKER_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/latest/face_landmarker.task"
)

MIN_DETECTION_CONFIDENCE = float(os.getenv("OPTICAL_MIN_DETECTION_CONFIDENCE", "0.5"))

# Nominal capture density used when no calibration reference is available
DEFAULT_DPI = float(os.getenv("OPTICAL_DEFAULT_DPI", "96"))

# Longer image side is capped to bound per-call latency
MAX_IMAGE_DIMENSION = int(os.getenv("OPTICAL_MAX_IMAGE_DIMENSION", "1600"))

# Minimum confidence for an unaided in-image reference detection
REFERENCE_MIN_CONFIDENCE = float(os.getenv("OPTICAL_REFERENCE_MIN_CONFIDENCE", "0.6"))

# Frames larger than this (width * height) are rejected before decoding
MAX_IMAGE_PIXELS = int(os.getenv("OPTICAL_MAX_IMAGE_PIXELS", "40000000"))
