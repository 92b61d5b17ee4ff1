"""
Tests for the quality assessor.
"""

import numpy as np
import pytest

from optical_engine.calibration import CalibrationResult, METHOD_DEFAULT, METHOD_REFERENCE
from optical_engine.landmarks import SOURCE_HEURISTIC
from optical_engine.quality import assess, calibration_score, classify_lighting

from conftest import make_landmarks


def striped_image(mean: int, amplitude: int, size=(480, 640)) -> np.ndarray:
    """Gray image with alternating rows at mean +/- amplitude."""
    image = np.full((size[0], size[1], 3), mean, dtype=np.int16)
    image[::2] += amplitude
    image[1::2] -= amplitude
    return np.clip(image, 0, 255).astype(np.uint8)


GROUNDED = CalibrationResult(ratio=0.25, method=METHOD_REFERENCE, is_grounded=True, confidence=1.0)
DEFAULT = CalibrationResult(ratio=0.26, method=METHOD_DEFAULT, is_grounded=False)


class TestLighting:

    @pytest.mark.parametrize("mean, std, expected", [
        (140, 40, "good"),
        (100, 30, "good"),
        (90, 40, "fair"),
        (140, 20, "fair"),
        (40, 40, "poor"),
        (210, 40, "poor"),
        (140, 10, "poor"),
    ])
    def test_buckets(self, mean, std, expected):
        assert classify_lighting(mean, std) == expected

    def test_from_image(self, landmarks):
        report = assess(landmarks, striped_image(140, 40), GROUNDED)
        assert report.lighting_condition == "good"
        assert report.mean_luminance == pytest.approx(140, abs=1)
        assert report.contrast == pytest.approx(40, abs=1)

        report = assess(landmarks, np.full((480, 640, 3), 128, np.uint8), GROUNDED)
        assert report.lighting_condition == "poor"


class TestQualityScore:

    def test_weighted_score(self, landmarks):
        report = assess(landmarks, striped_image(140, 40), GROUNDED)
        assert report.measurement_quality == pytest.approx(0.5 * 0.9 + 0.2 * 1.0 + 0.3 * 1.0)
        assert report.face_detection_confidence == pytest.approx(0.9)
        assert not report.small_image

    def test_default_calibration_scores_lower(self, landmarks):
        image = striped_image(140, 40)
        grounded = assess(landmarks, image, GROUNDED)
        default = assess(landmarks, image, DEFAULT)
        assert default.measurement_quality < grounded.measurement_quality

        weakly_grounded = CalibrationResult(0.25, METHOD_REFERENCE, True, confidence=0.0)
        assert calibration_score(DEFAULT) < calibration_score(weakly_grounded)

    def test_heuristic_confidence_capped(self):
        lm = make_landmarks(confidence=0.95, source=SOURCE_HEURISTIC)
        report = assess(lm, striped_image(140, 40), GROUNDED)
        assert report.face_detection_confidence == pytest.approx(0.7)

    def test_small_image_penalty(self, landmarks):
        large = assess(landmarks, striped_image(140, 40), GROUNDED)
        small = assess(landmarks, striped_image(140, 40, size=(200, 300)), GROUNDED)
        assert small.small_image
        assert small.measurement_quality == pytest.approx(0.7 * large.measurement_quality)

    def test_scores_bounded(self, landmarks):
        for image in (striped_image(140, 40), np.zeros((100, 100, 3), np.uint8)):
            for calibration in (GROUNDED, DEFAULT):
                report = assess(landmarks, image, calibration)
                assert 0.0 <= report.measurement_quality <= 1.0
                assert 0.0 <= report.face_detection_confidence <= 1.0
