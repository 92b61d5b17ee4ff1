"""
Landmark Provider contract

Defines the landmark data model shared by every detection strategy and the
abstract provider interface. Two strategies implement it:

- MediaPipeLandmarkProvider (landmark_model.py): trained FaceLandmarker model
- HeuristicLandmarkProvider (heuristic_landmarks.py): skin-color / dark-region analysis

Point conventions (pixel space, image-space sides):
- left_eye / right_eye: >= 2 points each, left = smaller x
- nose: 9 points, 0-3 down the ridge (0 = bridge top),
  4-8 left-to-right along the nostril base (6 = lower tip, 4/8 = alar extremes)
- jaw_outline: ordered left-to-right, first/last = jaw extremes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

from .errors import InputError


Point = Tuple[float, float]

NOSE_POINT_COUNT = 9
NOSE_BRIDGE_TOP = 0
NOSE_RIDGE = (0, 1, 2, 3)
NOSE_LOWER_TIP = 6
NOSE_ALAR_LEFT = 4
NOSE_ALAR_RIGHT = 8

SOURCE_MODEL = "model"
SOURCE_HEURISTIC = "heuristic"


@dataclass(frozen=True)
class LandmarkSet:
    """Anatomical point sets for one face. Read-only once produced."""
    left_eye: Tuple[Point, ...]
    right_eye: Tuple[Point, ...]
    nose: Tuple[Point, ...]
    jaw_outline: Tuple[Point, ...]
    confidence: float
    source: str

    def __post_init__(self):
        if len(self.left_eye) < 2 or len(self.right_eye) < 2:
            raise ValueError("Each eye needs at least 2 points")
        if len(self.nose) != NOSE_POINT_COUNT:
            raise ValueError(f"Nose needs exactly {NOSE_POINT_COUNT} points")
        if len(self.jaw_outline) < 2:
            raise ValueError("Jaw outline needs at least 2 points")

    @classmethod
    def from_points(cls, left_eye, right_eye, nose, jaw_outline,
                    confidence: float, source: str) -> "LandmarkSet":
        """Build a LandmarkSet from any iterables of (x, y) pairs."""
        def freeze(points):
            return tuple((float(x), float(y)) for x, y in points)

        return cls(
            left_eye=freeze(left_eye),
            right_eye=freeze(right_eye),
            nose=freeze(nose),
            jaw_outline=freeze(jaw_outline),
            confidence=float(confidence),
            source=source,
        )

    def to_dict(self) -> dict:
        return {
            "left_eye": [list(p) for p in self.left_eye],
            "right_eye": [list(p) for p in self.right_eye],
            "nose": [list(p) for p in self.nose],
            "jaw_outline": [list(p) for p in self.jaw_outline],
            "confidence": self.confidence,
            "source": self.source,
        }


@dataclass(frozen=True)
class DetectionFailure:
    """Returned by a provider when no face could be located."""
    reason: str
    source: str


DetectionOutcome = Union[LandmarkSet, DetectionFailure]


class LandmarkProvider(ABC):
    """Interface for single-image facial landmark extraction."""

    source: str = ""

    @abstractmethod
    def detect(self, image: np.ndarray) -> DetectionOutcome:
        """
        Locate facial landmarks in a BGR image.

        Returns:
            LandmarkSet on success, DetectionFailure when no face is found
        """

    def close(self):
        """Release resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_landmark_provider(strategy: str) -> LandmarkProvider:
    """
    Build the landmark provider selected by configuration.

    Args:
        strategy: "mediapipe" or "heuristic"
    """
    strategy = (strategy or "").strip().lower()

    if strategy in ("mediapipe", "model"):
        from .landmark_model import MediaPipeLandmarkProvider
        return MediaPipeLandmarkProvider()
    if strategy == "heuristic":
        from .heuristic_landmarks import HeuristicLandmarkProvider
        return HeuristicLandmarkProvider()

    raise InputError(f"Unknown landmark strategy: {strategy!r}")
