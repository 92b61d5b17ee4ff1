"""
Measurement result record.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .landmarks import LandmarkSet, Point


LIGHTING_GOOD = "good"
LIGHTING_FAIR = "fair"
LIGHTING_POOR = "poor"


@dataclass(frozen=True)
class MeasurementResult:
    """
    Complete optical measurement for one image.

    Lengths are in millimeters, angles in degrees. Optical centers are offsets
    from the image center with "up" positive. Immutable once produced.
    """

    # Pupillary distance
    pupillary_distance: float
    monocular_pd_right: float
    monocular_pd_left: float

    # Optical centers (x, y)
    optical_center_right: Point
    optical_center_left: Point

    # Segment height
    segment_height_right: float
    segment_height_left: float

    # Face
    face_width: float
    face_height: float
    nose_bridge_width: float

    # Frame fitting
    bridge_width: float
    temple_length: float
    pantoscopic_tilt: float
    wrap_angle: float
    vertex_distance: float
    frame_width: float
    frame_height: float

    # Provenance
    measurement_type: str
    emphasized_fields: Tuple[str, ...]
    defaulted_fields: Tuple[str, ...]
    calibration_method: str
    pixel_to_mm_ratio: float
    landmark_source: str
    left_pupil_px: Point
    right_pupil_px: Point

    # Quality
    measurement_quality: float = 0.0
    face_detection_confidence: float = 0.0
    lighting_condition: str = LIGHTING_POOR
    needs_review: bool = False
    warnings: Tuple[str, ...] = ()

    landmarks: Optional[LandmarkSet] = field(default=None, compare=False, repr=False)

    @property
    def nasal_pd(self) -> float:
        """Left half of the monocular split, as named by the clinic records."""
        return self.monocular_pd_left

    @property
    def temporal_pd(self) -> float:
        """Right half of the monocular split, as named by the clinic records."""
        return self.monocular_pd_right

    def to_dict(self, include_landmarks: bool = False) -> dict:
        """Flat field set for serialization. Values are rounded to 0.01."""
        def r(value: float) -> float:
            return round(float(value), 2)

        data = {
            "pupillary_distance": r(self.pupillary_distance),
            "monocular_pd_right": r(self.monocular_pd_right),
            "monocular_pd_left": r(self.monocular_pd_left),
            "nasal_pd": r(self.nasal_pd),
            "temporal_pd": r(self.temporal_pd),
            "optical_center_right_x": r(self.optical_center_right[0]),
            "optical_center_right_y": r(self.optical_center_right[1]),
            "optical_center_left_x": r(self.optical_center_left[0]),
            "optical_center_left_y": r(self.optical_center_left[1]),
            "segment_height_right": r(self.segment_height_right),
            "segment_height_left": r(self.segment_height_left),
            "face_width": r(self.face_width),
            "face_height": r(self.face_height),
            "nose_bridge_width": r(self.nose_bridge_width),
            "bridge_width": r(self.bridge_width),
            "temple_length": r(self.temple_length),
            "pantoscopic_tilt": r(self.pantoscopic_tilt),
            "wrap_angle": r(self.wrap_angle),
            "vertex_distance": r(self.vertex_distance),
            "frame_width": r(self.frame_width),
            "frame_height": r(self.frame_height),
            "measurement_quality": r(self.measurement_quality),
            "face_detection_confidence": r(self.face_detection_confidence),
            "lighting_condition": self.lighting_condition,
            "measurement_type": self.measurement_type,
            "emphasized_fields": list(self.emphasized_fields),
            "defaulted_fields": list(self.defaulted_fields),
            "calibration_method": self.calibration_method,
            "pixel_to_mm_ratio": round(self.pixel_to_mm_ratio, 6),
            "landmark_source": self.landmark_source,
            "needs_review": self.needs_review,
            "warnings": list(self.warnings),
        }
        if include_landmarks and self.landmarks is not None:
            data["landmarks"] = self.landmarks.to_dict()
        return data

    def __str__(self) -> str:
        review = " needs review" if self.needs_review else ""
        return (
            f"MeasurementResult(PD={self.pupillary_distance:.1f}mm, "
            f"quality={self.measurement_quality:.0%}, "
            f"calibration={self.calibration_method}{review})"
        )
