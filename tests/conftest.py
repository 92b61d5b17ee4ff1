"""
Shared test fixtures.
"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from optical_engine.landmarks import (  # noqa: E402
    DetectionFailure,
    LandmarkProvider,
    LandmarkSet,
    SOURCE_MODEL,
)


# Synthetic face drawn by synthetic_face_image
FACE_SIZE = (640, 520)  # width, height
FACE_CENTER = (320, 260)
FACE_AXES = (150, 200)
SKIN_BGR = (140, 170, 220)
BACKGROUND_BGR = (200, 200, 200)
EYE_BGR = (30, 30, 30)
EYE_RADIUS = 12
LEFT_EYE_CENTER = (260, 220)
RIGHT_EYE_CENTER = (380, 220)


def eye_points(center, radius=6.0):
    """Pupil center plus four boundary points; their mean is the center."""
    x, y = center
    return [(x, y), (x - radius, y), (x + radius, y), (x, y - radius), (x, y + radius)]


def nose_points(mid_x, top_y, tip_y, half_width=25.0):
    ridge = [(mid_x, top_y + (tip_y - top_y) * i / 4) for i in range(4)]
    base = [(mid_x + f * half_width, tip_y) for f in (-1.0, -0.5, 0.0, 0.5, 1.0)]
    return ridge + base


def jaw_points(center_x, top_y, half_width, depth, count=17):
    """Lower half-ellipse ordered left to right."""
    return [
        (center_x + half_width * np.cos(t), top_y + depth * np.sin(t))
        for t in np.linspace(np.pi, 0.0, count)
    ]


def make_landmarks(
    left_pupil=(260.0, 220.0),
    right_pupil=(380.0, 220.0),
    nose=None,
    jaw=None,
    confidence=0.9,
    source=SOURCE_MODEL,
):
    mid_x = (left_pupil[0] + right_pupil[0]) / 2
    eye_y = (left_pupil[1] + right_pupil[1]) / 2
    if nose is None:
        nose = nose_points(mid_x, eye_y, eye_y + 80)
    if jaw is None:
        jaw = jaw_points(mid_x, eye_y + 40, 150, 200)
    return LandmarkSet.from_points(
        left_eye=eye_points(left_pupil),
        right_eye=eye_points(right_pupil),
        nose=nose,
        jaw_outline=jaw,
        confidence=confidence,
        source=source,
    )


class FakeLandmarkProvider(LandmarkProvider):
    """Returns a fixed outcome and records what it was given."""

    source = SOURCE_MODEL

    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = 0
        self.last_shape = None
        self.closed = False

    def detect(self, image):
        self.calls += 1
        self.last_shape = image.shape
        return self.outcome

    def close(self):
        self.closed = True


@pytest.fixture
def landmarks() -> LandmarkSet:
    """Level pupils 120 px apart, nose on the midline, jaw 300 px wide."""
    return make_landmarks()


@pytest.fixture
def fake_provider(landmarks) -> FakeLandmarkProvider:
    return FakeLandmarkProvider(landmarks)


@pytest.fixture
def failing_provider() -> FakeLandmarkProvider:
    return FakeLandmarkProvider(DetectionFailure("No face detected in image", SOURCE_MODEL))


def draw_face(image: np.ndarray) -> np.ndarray:
    cv2.ellipse(image, FACE_CENTER, FACE_AXES, 0, 0, 360, SKIN_BGR, -1)
    cv2.circle(image, LEFT_EYE_CENTER, EYE_RADIUS, EYE_BGR, -1)
    cv2.circle(image, RIGHT_EYE_CENTER, EYE_RADIUS, EYE_BGR, -1)
    return image


@pytest.fixture
def synthetic_face_image() -> np.ndarray:
    """Skin-colored ellipse with two dark eyes on a gray background."""
    image = np.full((FACE_SIZE[1], FACE_SIZE[0], 3), BACKGROUND_BGR, dtype=np.uint8)
    return draw_face(image)


@pytest.fixture
def card_image() -> np.ndarray:
    """Dark ID-1 shaped rectangle, 324 x 204 px, on a light background."""
    image = np.full((480, 640, 3), 220, dtype=np.uint8)
    cv2.rectangle(image, (100, 120), (100 + 323, 120 + 203), (40, 40, 40), -1)
    return image


@pytest.fixture
def coin_image() -> np.ndarray:
    """Dark disc of 100 px diameter on a light background."""
    image = np.full((480, 640, 3), 220, dtype=np.uint8)
    cv2.circle(image, (320, 240), 50, (40, 40, 40), -1)
    return image


@pytest.fixture
def blank_image() -> np.ndarray:
    return np.full((480, 640, 3), 255, dtype=np.uint8)


@pytest.fixture
def noise_image() -> np.ndarray:
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(480, 640, 3), dtype=np.uint8)


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()
