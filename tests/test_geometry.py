"""
Tests for the pure geometric calculator.
"""

import math

import pytest

from optical_engine import geometry
from optical_engine.geometry import Estimate

from conftest import jaw_points, nose_points


class TestPupilAndDistance:

    def test_pupil_center_is_mean(self):
        points = [(10.0, 20.0), (14.0, 22.0), (12.0, 30.0)]
        assert geometry.pupil_center(points) == pytest.approx((12.0, 24.0))

    def test_pupil_center_ignores_order(self):
        points = [(1.0, 5.0), (7.0, 2.0), (4.0, 9.0), (0.5, 3.5)]
        assert geometry.pupil_center(points) == pytest.approx(geometry.pupil_center(points[::-1]))

    def test_pupil_center_empty_raises(self):
        with pytest.raises(ValueError):
            geometry.pupil_center([])

    def test_distance_symmetric(self):
        a, b = (3.0, 4.0), (-8.5, 11.0)
        assert geometry.distance_mm(a, b, 0.31) == geometry.distance_mm(b, a, 0.31)

    def test_pupillary_distance_reference_value(self):
        # 80 px at 0.26 mm/px
        assert geometry.pupillary_distance((120, 200), (200, 200), 0.26) == pytest.approx(20.8)

    def test_calibration_round_trip(self):
        width_px, real_mm = 324.0, 85.6
        ratio = real_mm / width_px
        assert ratio == pytest.approx(0.2642, abs=1e-4)
        assert geometry.distance_mm((0, 0), (width_px, 0), ratio) == pytest.approx(real_mm)
        assert geometry.distance_mm((0, 0), (300, 0), ratio) == pytest.approx(79.3, abs=0.05)


class TestFacialMeasurements:

    def test_monocular_pd_uses_pupil_height(self):
        # Vertical offset from the midline point must not count
        assert geometry.monocular_pd((100.0, 50.0), 160.0, 0.5) == pytest.approx(30.0)

    def test_monocular_halves_need_not_sum_to_pd(self):
        left, right = (100.0, 200.0), (220.0, 230.0)
        midline = 150.0
        total = geometry.pupillary_distance(left, right, 1.0)
        halves = geometry.monocular_pd(left, midline, 1.0) + geometry.monocular_pd(right, midline, 1.0)
        assert halves != pytest.approx(total)

    def test_midline_is_bridge_top(self):
        nose = nose_points(321.0, 200.0, 280.0)
        assert geometry.midline_x(nose) == 321.0

    def test_optical_center_up_positive(self):
        x, y = geometry.optical_center((300.0, 200.0), (640, 480), 0.25)
        assert x == pytest.approx(-5.0)
        assert y == pytest.approx(10.0)

    def test_segment_height_to_lowest_jaw_point(self):
        jaw = [(0.0, 300.0), (50.0, 420.0), (100.0, 300.0)]
        assert geometry.segment_height((50.0, 220.0), jaw, 0.5) == pytest.approx(100.0)

    def test_face_dimensions(self):
        jaw = jaw_points(320.0, 260.0, 150.0, 200.0)
        assert geometry.face_width(jaw, 1.0) == pytest.approx(300.0)
        assert geometry.face_height(jaw, 1.0) == pytest.approx(200.0)

    def test_nose_bridge_width_from_alar_points(self):
        nose = nose_points(320.0, 200.0, 280.0, half_width=20.0)
        assert geometry.nose_bridge_width(nose, 0.5) == pytest.approx(20.0)

    def test_scaling_law(self):
        left, right = (260.0, 220.0), (380.0, 225.0)
        jaw = jaw_points(320.0, 260.0, 150.0, 200.0)
        nose = nose_points(320.0, 220.0, 300.0)
        ratio = 0.2

        pairs = [
            (geometry.pupillary_distance(left, right, ratio),
             geometry.pupillary_distance(left, right, 2 * ratio)),
            (geometry.monocular_pd(left, 320.0, ratio), geometry.monocular_pd(left, 320.0, 2 * ratio)),
            (geometry.segment_height(right, jaw, ratio), geometry.segment_height(right, jaw, 2 * ratio)),
            (geometry.face_width(jaw, ratio), geometry.face_width(jaw, 2 * ratio)),
            (geometry.nose_bridge_width(nose, ratio), geometry.nose_bridge_width(nose, 2 * ratio)),
        ]
        for single, double in pairs:
            assert double == pytest.approx(2 * single)

        oc = geometry.optical_center(left, (640, 480), ratio)
        oc2 = geometry.optical_center(left, (640, 480), 2 * ratio)
        assert oc2 == pytest.approx((2 * oc[0], 2 * oc[1]))


class TestEstimates:

    def test_bridge_width_estimate(self):
        assert geometry.bridge_width(90.0).value == pytest.approx(18.0)
        assert geometry.bridge_width(65.0).value == pytest.approx(13.0)
        assert not geometry.bridge_width(65.0).defaulted

    def test_bridge_width_out_of_range_defaults(self):
        estimate = geometry.bridge_width(20.8)
        assert estimate.defaulted
        assert estimate.value == geometry.BRIDGE_WIDTH_DEFAULT_MM

    def test_temple_length(self):
        assert geometry.temple_length(180.0).value == pytest.approx(135.0)
        assert geometry.temple_length(50.0) == Estimate(geometry.TEMPLE_LENGTH_DEFAULT_MM, True)

    def test_pantoscopic_tilt_estimate(self):
        estimate = geometry.pantoscopic_tilt((0.0, 0.0), (100.0, 10.0))
        assert estimate.value == pytest.approx(math.degrees(math.atan(0.1)))
        assert not estimate.defaulted

    def test_pantoscopic_tilt_degenerate_falls_back(self):
        estimate = geometry.pantoscopic_tilt((200.0, 100.0), (200.4, 160.0))
        assert estimate == Estimate(geometry.PANTOSCOPIC_TILT_DEFAULT_DEG, True)
        assert math.isfinite(estimate.value)

    def test_pantoscopic_tilt_level_eyes_below_range(self):
        estimate = geometry.pantoscopic_tilt((0.0, 0.0), (100.0, 0.0))
        assert estimate.defaulted

    def test_wrap_angle(self):
        assert geometry.wrap_angle(140.0, 100.0).value == pytest.approx(11.2)
        assert geometry.wrap_angle(140.0, 0.0) == Estimate(geometry.WRAP_ANGLE_DEFAULT_DEG, True)
        assert geometry.wrap_angle(400.0, 100.0).defaulted

    def test_non_finite_inputs_default(self):
        assert geometry.bridge_width(float("nan")).defaulted
        assert geometry.temple_length(float("inf")).defaulted
        assert geometry.wrap_angle(float("nan"), 100.0).defaulted

    def test_vertex_distance_is_declared_default(self):
        assert geometry.vertex_distance() == Estimate(12.0, True)

    def test_default_estimate(self):
        for name in ("temple_length", "pantoscopic_tilt", "wrap_angle", "vertex_distance"):
            assert geometry.default_estimate(name).defaulted
