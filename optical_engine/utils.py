"""
Utility functions for the optical measurement engine.
"""

import math
import numpy as np
import cv2
from typing import Tuple, Optional, Sequence


# ISO/IEC 7810 ID-1 Standard Card Dimensions (mm)
CARD_WIDTH_MM = 85.60
CARD_HEIGHT_MM = 53.98
CARD_ASPECT_RATIO = CARD_WIDTH_MM / CARD_HEIGHT_MM  # ~1.586

MM_PER_INCH = 25.4

# Physiological PD envelope (mm)
MIN_PLAUSIBLE_PD_MM = 40.0
MAX_PLAUSIBLE_PD_MM = 80.0

# Thresholds
ASPECT_RATIO_TOLERANCE = 0.25  # Tolerance for card aspect ratio (1.586 ± 0.25)
MIN_CARD_AREA_RATIO = 0.01  # Card must be at least 1% of the frame
SMALL_IMAGE_MIN_SIDE_PX = 240  # Shorter side below this incurs a quality penalty


def euclidean_distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    """Calculate Euclidean distance between two 2D points."""
    return math.sqrt((p2[0] - p1[0]) ** 2 + (p2[1] - p1[1]) ** 2)


def calculate_angle(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    """Calculate angle between two points in degrees."""
    return math.degrees(math.atan2(p2[1] - p1[1], p2[0] - p1[0]))


def ratio_from_dpi(dpi: float) -> float:
    """Millimeters per pixel for an image captured at ``dpi``."""
    return MM_PER_INCH / dpi


def order_corners(corners: np.ndarray) -> np.ndarray:
    """
    Order 4 corners in clockwise order starting from top-left.

    Args:
        corners: Array of 4 corner points

    Returns:
        Ordered corners: [top-left, top-right, bottom-right, bottom-left]
    """
    corners = corners.reshape(4, 2)
    sorted_by_y = corners[np.argsort(corners[:, 1])]

    top_points = sorted_by_y[:2]
    bottom_points = sorted_by_y[2:]

    top_left, top_right = top_points[np.argsort(top_points[:, 0])]
    bottom_left, bottom_right = bottom_points[np.argsort(bottom_points[:, 0])]

    return np.array([top_left, top_right, bottom_right, bottom_left], dtype=np.float32)


def quad_side_lengths(corners: np.ndarray) -> Tuple[float, float]:
    """
    Average width and height of an ordered quadrilateral (TL, TR, BR, BL).

    Returns:
        (long_side_px, short_side_px)
    """
    width_px = (np.linalg.norm(corners[1] - corners[0]) +
                np.linalg.norm(corners[2] - corners[3])) / 2
    height_px = (np.linalg.norm(corners[3] - corners[0]) +
                 np.linalg.norm(corners[2] - corners[1])) / 2

    if height_px > width_px:
        width_px, height_px = height_px, width_px

    return float(width_px), float(height_px)


def validate_aspect_ratio(width: float, height: float, expected_ratio: float, tolerance: float = 0.1) -> bool:
    """Check if width/height ratio matches expected ratio within tolerance."""
    if height == 0:
        return False
    actual_ratio = width / height
    return abs(actual_ratio - expected_ratio) <= tolerance


def to_gray(image: np.ndarray) -> np.ndarray:
    """Grayscale view of a BGR or already-gray image."""
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def preprocess_for_card_detection(image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Preprocess image for reference object detection.

    Args:
        image: BGR input image

    Returns:
        Tuple of (grayscale, edges)
    """
    gray = to_gray(image)

    # Gaussian blur (5x5 kernel) before Canny (thresholds 50, 150)
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    edges = cv2.Canny(blurred, 50, 150)

    # Close small gaps so object outlines form closed contours
    edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)

    return gray, edges


def luminance_statistics(image: np.ndarray) -> Tuple[float, float]:
    """
    Mean luminance and contrast (standard deviation) of the frame.

    Args:
        image: BGR input image

    Returns:
        Tuple of (mean, std) on the 0-255 scale
    """
    mean, std = cv2.meanStdDev(to_gray(image))
    return float(mean[0][0]), float(std[0][0])


def draw_landmarks_on_image(
    image: np.ndarray,
    pupil_left: Optional[Tuple[float, float]],
    pupil_right: Optional[Tuple[float, float]],
    nose: Optional[Sequence[Tuple[float, float]]] = None,
    jaw_outline: Optional[Sequence[Tuple[float, float]]] = None,
    reference_corners: Optional[np.ndarray] = None,
    pd_mm: Optional[float] = None
) -> np.ndarray:
    """
    Draw visualization of detected landmarks on image.

    Args:
        image: Input BGR image
        pupil_left: Left pupil center (x, y)
        pupil_right: Right pupil center (x, y)
        nose: Nose landmark points
        jaw_outline: Jaw outline points, left to right
        reference_corners: Detected reference object corners (4x2 array)
        pd_mm: Calculated PD in mm

    Returns:
        Annotated image
    """
    annotated = image.copy()

    if reference_corners is not None:
        corners = reference_corners.astype(np.int32)
        cv2.polylines(annotated, [corners], True, (0, 255, 0), 2)
        for corner in corners:
            cv2.circle(annotated, tuple(int(c) for c in corner), 5, (0, 255, 0), -1)

    if jaw_outline:
        jaw = np.array(jaw_outline, dtype=np.int32).reshape(-1, 1, 2)
        cv2.polylines(annotated, [jaw], False, (255, 255, 0), 2)

    if nose:
        for x, y in nose:
            cv2.circle(annotated, (int(x), int(y)), 3, (0, 165, 255), -1)

    for pupil in (pupil_left, pupil_right):
        if pupil is not None:
            cv2.circle(annotated, (int(pupil[0]), int(pupil[1])), 8, (255, 0, 0), -1)
            cv2.circle(annotated, (int(pupil[0]), int(pupil[1])), 10, (255, 255, 255), 2)

    if pupil_left is not None and pupil_right is not None:
        cv2.line(
            annotated,
            (int(pupil_left[0]), int(pupil_left[1])),
            (int(pupil_right[0]), int(pupil_right[1])),
            (0, 0, 255), 2
        )

    if pd_mm is not None:
        cv2.putText(
            annotated,
            f"PD: {pd_mm:.1f} mm",
            (20, 40),
            cv2.FONT_HERSHEY_SIMPLEX,
            1.0,
            (0, 255, 255),
            2
        )

    return annotated
