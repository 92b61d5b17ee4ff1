"""
Quality Assessor

Folds landmark confidence, lighting statistics and calibration provenance
into one score:

    quality = 0.5 * confidence + 0.2 * lighting_score + 0.3 * calibration_score

The default calibration path always scores below a grounded one, so an
approximate ratio is visible in the number even when everything else is
equal.
"""

from dataclasses import dataclass

import numpy as np

from .calibration import CalibrationResult
from .landmarks import SOURCE_HEURISTIC, LandmarkSet
from .result import LIGHTING_FAIR, LIGHTING_GOOD, LIGHTING_POOR
from .utils import SMALL_IMAGE_MIN_SIDE_PX, luminance_statistics


CONFIDENCE_WEIGHT = 0.5
LIGHTING_WEIGHT = 0.2
CALIBRATION_WEIGHT = 0.3

LIGHTING_SCORES = {
    LIGHTING_GOOD: 1.0,
    LIGHTING_FAIR: 0.6,
    LIGHTING_POOR: 0.2,
}

# Grayscale luminance thresholds
POOR_MEAN_BELOW = 50
POOR_MEAN_ABOVE = 200
POOR_CONTRAST_BELOW = 15
GOOD_MEAN_RANGE = (100, 180)
GOOD_CONTRAST_MIN = 30

GROUNDED_CALIBRATION_BASE = 0.6
DEFAULT_CALIBRATION_SCORE = 0.3

HEURISTIC_CONFIDENCE_CAP = 0.7
SMALL_IMAGE_FACTOR = 0.7


@dataclass(frozen=True)
class QualityReport:
    measurement_quality: float
    face_detection_confidence: float
    lighting_condition: str
    mean_luminance: float
    contrast: float
    small_image: bool = False


def classify_lighting(mean: float, std: float) -> str:
    """Bucket grayscale mean / standard deviation into good, fair or poor."""
    if mean < POOR_MEAN_BELOW or mean > POOR_MEAN_ABOVE or std < POOR_CONTRAST_BELOW:
        return LIGHTING_POOR
    if GOOD_MEAN_RANGE[0] <= mean <= GOOD_MEAN_RANGE[1] and std >= GOOD_CONTRAST_MIN:
        return LIGHTING_GOOD
    return LIGHTING_FAIR


def calibration_score(calibration: CalibrationResult) -> float:
    if not calibration.is_grounded:
        return DEFAULT_CALIBRATION_SCORE
    confidence = max(0.0, min(1.0, calibration.confidence))
    return GROUNDED_CALIBRATION_BASE + (1.0 - GROUNDED_CALIBRATION_BASE) * confidence


def detection_confidence(landmarks: LandmarkSet) -> float:
    confidence = max(0.0, min(1.0, landmarks.confidence))
    if landmarks.source == SOURCE_HEURISTIC:
        confidence = min(confidence, HEURISTIC_CONFIDENCE_CAP)
    return confidence


def assess(
    landmarks: LandmarkSet,
    image: np.ndarray,
    calibration: CalibrationResult
) -> QualityReport:
    """
    Assess one measurement.

    Args:
        landmarks: Landmarks the measurement was computed from
        image: BGR image the landmarks were detected in
        calibration: Calibration used for the measurement

    Returns:
        QualityReport with every score in [0, 1]
    """
    confidence = detection_confidence(landmarks)
    mean, std = luminance_statistics(image)
    lighting = classify_lighting(mean, std)

    quality = (
        CONFIDENCE_WEIGHT * confidence
        + LIGHTING_WEIGHT * LIGHTING_SCORES[lighting]
        + CALIBRATION_WEIGHT * calibration_score(calibration)
    )

    small_image = min(image.shape[:2]) < SMALL_IMAGE_MIN_SIDE_PX
    if small_image:
        quality *= SMALL_IMAGE_FACTOR

    return QualityReport(
        measurement_quality=max(0.0, min(1.0, quality)),
        face_detection_confidence=confidence,
        lighting_condition=lighting,
        mean_luminance=mean,
        contrast=std,
        small_image=small_image,
    )
