"""
Geometric Measurement Calculator

Pure, stateless functions over landmark points and a pixel-to-mm ratio.
Pixel-space intermediates never depend on the ratio, so every millimeter
quantity scales linearly with it.

Quantities that cannot be measured reliably from a frontal photograph have a
closed-form estimate and a declared default. The default replaces the
estimate only when it is degenerate (non-finite, near-zero denominator) or
outside its sane clinical range, and the replacement is reported through
Estimate.defaulted.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .landmarks import NOSE_ALAR_LEFT, NOSE_ALAR_RIGHT, NOSE_BRIDGE_TOP, Point
from .utils import euclidean_distance


# Frame bridge is roughly a fifth of the pupillary distance
BRIDGE_WIDTH_PD_FRACTION = 0.20
BRIDGE_WIDTH_RANGE_MM = (12.0, 26.0)
BRIDGE_WIDTH_DEFAULT_MM = 18.0

# Temple runs from the hinge to behind the ear, about 3/4 of the face width
TEMPLE_LENGTH_FACE_FRACTION = 0.75
TEMPLE_LENGTH_RANGE_MM = (120.0, 160.0)
TEMPLE_LENGTH_DEFAULT_MM = 140.0

PANTOSCOPIC_TILT_RANGE_DEG = (2.0, 15.0)
PANTOSCOPIC_TILT_DEFAULT_DEG = 8.0

# Wider faces take more frame curvature: degrees per unit of width/height
WRAP_ANGLE_PER_ASPECT = 8.0
WRAP_ANGLE_RANGE_DEG = (0.0, 20.0)
WRAP_ANGLE_DEFAULT_DEG = 6.0

# Not observable in a frontal image; standard fitting value
VERTEX_DISTANCE_DEFAULT_MM = 12.0

# Horizontal distances below this are treated as degenerate
MIN_HORIZONTAL_PX = 1.0

# Frame suggestions around the measured eyes
FRAME_WIDTH_MARGIN_MM = 20.0
FRAME_HEIGHT_MARGIN_MM = 15.0


@dataclass(frozen=True)
class Estimate:
    """An estimated quantity and whether its declared default was used."""
    value: float
    defaulted: bool = False


def _within(value: Optional[float], bounds: Tuple[float, float]) -> bool:
    return value is not None and math.isfinite(value) and bounds[0] <= value <= bounds[1]


def _estimate(value: Optional[float], bounds: Tuple[float, float], default: float) -> Estimate:
    if _within(value, bounds):
        return Estimate(value)
    return Estimate(default, defaulted=True)


def pupil_center(eye_points: Sequence[Point]) -> Point:
    """Coordinate-wise arithmetic mean of the eye points."""
    if not eye_points:
        raise ValueError("pupil_center needs at least one point")
    n = len(eye_points)
    return (
        sum(p[0] for p in eye_points) / n,
        sum(p[1] for p in eye_points) / n,
    )


def distance_mm(a: Point, b: Point, ratio: float) -> float:
    """Euclidean distance between two pixel points, in millimeters."""
    return euclidean_distance(a, b) * ratio


def pupillary_distance(left_pupil: Point, right_pupil: Point, ratio: float) -> float:
    return distance_mm(left_pupil, right_pupil, ratio)


def midline_x(nose: Sequence[Point]) -> float:
    """Facial midline: x of the nose bridge landmark."""
    return nose[NOSE_BRIDGE_TOP][0]


def monocular_pd(pupil: Point, midline: float, ratio: float) -> float:
    """Distance from one pupil to the facial midline at the same height."""
    return distance_mm(pupil, (midline, pupil[1]), ratio)


def optical_center(pupil: Point, image_size: Tuple[int, int], ratio: float) -> Point:
    """
    Pupil offset from the image center in millimeters, up positive.

    Args:
        pupil: Pupil center (x, y) in pixels
        image_size: (width, height) in pixels
        ratio: mm per pixel
    """
    cx, cy = image_size[0] / 2, image_size[1] / 2
    return (
        (pupil[0] - cx) * ratio,
        (cy - pupil[1]) * ratio,
    )


def jaw_bottom_y(jaw_outline: Sequence[Point]) -> float:
    return max(p[1] for p in jaw_outline)


def segment_height(pupil: Point, jaw_outline: Sequence[Point], ratio: float) -> float:
    """Vertical distance from the pupil down to the lowest jaw landmark."""
    return (jaw_bottom_y(jaw_outline) - pupil[1]) * ratio


def face_width(jaw_outline: Sequence[Point], ratio: float) -> float:
    """Distance between the jaw outline extremes."""
    return distance_mm(jaw_outline[0], jaw_outline[-1], ratio)


def face_height(jaw_outline: Sequence[Point], ratio: float) -> float:
    """Vertical extent of the jaw outline, topmost to bottom point."""
    ys = [p[1] for p in jaw_outline]
    return (max(ys) - min(ys)) * ratio


def nose_bridge_width(nose: Sequence[Point], ratio: float) -> float:
    """Distance between the alar extremes of the nose."""
    return distance_mm(nose[NOSE_ALAR_LEFT], nose[NOSE_ALAR_RIGHT], ratio)


def bridge_width(pd_mm: float) -> Estimate:
    """Frame bridge width from the pupillary distance."""
    value = pd_mm * BRIDGE_WIDTH_PD_FRACTION if math.isfinite(pd_mm) else None
    return _estimate(value, BRIDGE_WIDTH_RANGE_MM, BRIDGE_WIDTH_DEFAULT_MM)


def temple_length(face_width_mm: float) -> Estimate:
    value = face_width_mm * TEMPLE_LENGTH_FACE_FRACTION if math.isfinite(face_width_mm) else None
    return _estimate(value, TEMPLE_LENGTH_RANGE_MM, TEMPLE_LENGTH_DEFAULT_MM)


def pantoscopic_tilt(left_pupil: Point, right_pupil: Point) -> Estimate:
    """
    Tilt from the vertical offset between the pupils:
    atan(|dy| / |dx|) in degrees.
    """
    dx = abs(right_pupil[0] - left_pupil[0])
    dy = abs(right_pupil[1] - left_pupil[1])
    if dx < MIN_HORIZONTAL_PX:
        return Estimate(PANTOSCOPIC_TILT_DEFAULT_DEG, defaulted=True)

    value = math.degrees(math.atan(dy / dx))
    return _estimate(value, PANTOSCOPIC_TILT_RANGE_DEG, PANTOSCOPIC_TILT_DEFAULT_DEG)


def wrap_angle(face_width_mm: float, face_height_mm: float) -> Estimate:
    """Frame wrap proportional to the face width/height aspect."""
    if not face_height_mm or face_height_mm <= 0:
        return Estimate(WRAP_ANGLE_DEFAULT_DEG, defaulted=True)

    value = WRAP_ANGLE_PER_ASPECT * face_width_mm / face_height_mm
    return _estimate(value, WRAP_ANGLE_RANGE_DEG, WRAP_ANGLE_DEFAULT_DEG)


def vertex_distance() -> Estimate:
    return Estimate(VERTEX_DISTANCE_DEFAULT_MM, defaulted=True)


def default_estimate(field: str) -> Estimate:
    """Declared default for a type-specific field that was not requested."""
    defaults = {
        "temple_length": TEMPLE_LENGTH_DEFAULT_MM,
        "pantoscopic_tilt": PANTOSCOPIC_TILT_DEFAULT_DEG,
        "wrap_angle": WRAP_ANGLE_DEFAULT_DEG,
        "vertex_distance": VERTEX_DISTANCE_DEFAULT_MM,
    }
    return Estimate(defaults[field], defaulted=True)
