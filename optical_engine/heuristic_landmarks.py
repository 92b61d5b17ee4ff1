"""
Heuristic Landmark Provider

Approximates eye positions without a trained model:

1. Skin-color segmentation in YCrCb to find the face region
2. Dark connected components inside the upper face band of each half (eyes)
3. Nose and jaw placed from anthropometric proportions of the face region

Precision is lower than the trained model, so confidence never exceeds
HEURISTIC_CONFIDENCE_CEILING.
"""

import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .landmarks import (
    DetectionFailure,
    DetectionOutcome,
    LandmarkProvider,
    LandmarkSet,
    Point,
    SOURCE_HEURISTIC,
)
from .utils import euclidean_distance, to_gray

logger = logging.getLogger(__name__)


HEURISTIC_CONFIDENCE_CEILING = 0.7

# Skin range in YCrCb (Y, Cr, Cb)
SKIN_YCRCB_LOWER = np.array([0, 133, 77], dtype=np.uint8)
SKIN_YCRCB_UPPER = np.array([255, 173, 127], dtype=np.uint8)

MIN_SKIN_FRACTION = 0.04  # Face region must cover at least 4% of the frame
EYE_BAND = (0.2, 0.55)  # Eye search band as fractions of face height
DARK_INTENSITY = 70  # Gray level below which a pixel may belong to a pupil
MIN_EYE_AREA_PX = 4

# Anthropometric proportions relative to face height / pupil span
NOSE_LENGTH_FRACTION = 0.28
NOSE_HALF_WIDTH_FRACTION = 0.28
JAW_POINTS = 17


class HeuristicLandmarkProvider(LandmarkProvider):
    """Skin-color and brightness based landmark approximation."""

    source = SOURCE_HEURISTIC

    def __init__(self, dark_intensity: int = DARK_INTENSITY):
        self.dark_intensity = dark_intensity
        self._kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (5, 5))

    def detect(self, image: np.ndarray) -> DetectionOutcome:
        """
        Approximate landmarks in a BGR image.

        Returns:
            LandmarkSet, or DetectionFailure when no face-like region is found
        """
        h, w = image.shape[:2]

        face_contour = self._find_face_region(image)
        if face_contour is None:
            return DetectionFailure("No skin-colored face region found", self.source)

        x, y, fw, fh = cv2.boundingRect(face_contour)
        face_mask = np.zeros((h, w), dtype=np.uint8)
        cv2.drawContours(face_mask, [face_contour], -1, 255, thickness=-1)

        dark = ((to_gray(image) < self.dark_intensity) & (face_mask > 0)).astype(np.uint8)

        band_top = int(y + fh * EYE_BAND[0])
        band_bottom = int(y + fh * EYE_BAND[1])
        mid_x = x + fw // 2

        left = self._find_eye(dark, band_top, band_bottom, x, mid_x)
        right = self._find_eye(dark, band_top, band_bottom, mid_x, x + fw)

        if left is None or right is None:
            return DetectionFailure("Could not locate both eyes in the face region", self.source)

        left_eye, left_area = left
        right_eye, right_area = right

        left_pupil = np.mean(left_eye, axis=0)
        right_pupil = np.mean(right_eye, axis=0)

        nose = self._approximate_nose(left_pupil, right_pupil, fh)
        jaw = self._approximate_jaw(x, fw, y + fh, (left_pupil[1] + right_pupil[1]) / 2)

        confidence = self._calculate_confidence(
            left_pupil, right_pupil, left_area, right_area, fw
        )
        logger.debug(
            f"[HeuristicLandmarks] face=({x},{y},{fw},{fh}) "
            f"pupils=({left_pupil[0]:.0f},{left_pupil[1]:.0f}) "
            f"({right_pupil[0]:.0f},{right_pupil[1]:.0f}) confidence={confidence:.2f}"
        )

        return LandmarkSet.from_points(
            left_eye=left_eye,
            right_eye=right_eye,
            nose=nose,
            jaw_outline=jaw,
            confidence=confidence,
            source=self.source,
        )

    def _find_face_region(self, image: np.ndarray) -> Optional[np.ndarray]:
        """Largest cleaned-up skin contour, or None if too small."""
        h, w = image.shape[:2]

        ycrcb = cv2.cvtColor(image, cv2.COLOR_BGR2YCrCb)
        skin = cv2.inRange(ycrcb, SKIN_YCRCB_LOWER, SKIN_YCRCB_UPPER)

        # Opening removes isolated skin-colored pixels (noise), closing joins the face
        skin = cv2.morphologyEx(skin, cv2.MORPH_OPEN, self._kernel)
        skin = cv2.morphologyEx(skin, cv2.MORPH_CLOSE, self._kernel, iterations=2)

        contours, _ = cv2.findContours(skin, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return None

        largest = max(contours, key=cv2.contourArea)
        if cv2.contourArea(largest) < MIN_SKIN_FRACTION * h * w:
            return None

        return largest

    def _find_eye(
        self,
        dark: np.ndarray,
        top: int,
        bottom: int,
        left: int,
        right: int
    ) -> Optional[Tuple[List[Point], int]]:
        """
        Find the largest dark blob inside a search window.

        Returns:
            (points, area) where points are the blob centroid and its four
            extreme pixels in image coordinates, or None
        """
        window = dark[top:bottom, left:right]
        if window.size == 0:
            return None

        count, labels, stats, centroids = cv2.connectedComponentsWithStats(window, connectivity=8)
        if count <= 1:
            return None

        # Label 0 is the background
        areas = stats[1:, cv2.CC_STAT_AREA]
        best = int(np.argmax(areas)) + 1
        area = int(stats[best, cv2.CC_STAT_AREA])
        if area < MIN_EYE_AREA_PX:
            return None

        ys, xs = np.nonzero(labels == best)
        extremes = [
            (xs[np.argmin(xs)], ys[np.argmin(xs)]),
            (xs[np.argmax(xs)], ys[np.argmax(xs)]),
            (xs[np.argmin(ys)], ys[np.argmin(ys)]),
            (xs[np.argmax(ys)], ys[np.argmax(ys)]),
        ]
        cx, cy = centroids[best]

        points = [(float(cx) + left, float(cy) + top)]
        points.extend((float(px) + left, float(py) + top) for px, py in extremes)
        return points, area

    @staticmethod
    def _approximate_nose(left_pupil: np.ndarray, right_pupil: np.ndarray, face_height: int) -> List[Point]:
        """Nine nose points placed on the midline below the pupils."""
        mid_x = (left_pupil[0] + right_pupil[0]) / 2
        eye_y = (left_pupil[1] + right_pupil[1]) / 2
        tip_y = eye_y + face_height * NOSE_LENGTH_FRACTION
        half_width = euclidean_distance(tuple(left_pupil), tuple(right_pupil)) * NOSE_HALF_WIDTH_FRACTION

        ridge = [(mid_x, float(y)) for y in np.linspace(eye_y, tip_y - face_height * 0.05, 4)]
        base = [(mid_x + f * half_width, tip_y) for f in (-1.0, -0.5, 0.0, 0.5, 1.0)]
        return ridge + base

    @staticmethod
    def _approximate_jaw(face_x: int, face_width: int, face_bottom: int, eye_y: float) -> List[Point]:
        """Lower half-ellipse of the face region, ordered left to right."""
        cx = face_x + face_width / 2
        a = face_width / 2
        b = max(face_bottom - eye_y, 1.0)

        # theta from pi to 0: left extreme, chin (bottom), right extreme
        return [
            (float(cx + a * np.cos(t)), float(eye_y + b * np.sin(t)))
            for t in np.linspace(np.pi, 0.0, JAW_POINTS)
        ]

    @staticmethod
    def _calculate_confidence(
        left_pupil: np.ndarray,
        right_pupil: np.ndarray,
        left_area: int,
        right_area: int,
        face_width: int
    ) -> float:
        confidence = 0.4

        # Similar blob sizes suggest both are eyes
        if min(left_area, right_area) / max(left_area, right_area) > 0.5:
            confidence += 0.15

        dx = abs(right_pupil[0] - left_pupil[0])
        dy = abs(right_pupil[1] - left_pupil[1])
        if dx > 0 and dy < 0.1 * dx:
            confidence += 0.15

        if face_width > 0 and 0.25 <= dx / face_width <= 0.6:
            confidence += 0.1

        return min(confidence, HEURISTIC_CONFIDENCE_CEILING)
