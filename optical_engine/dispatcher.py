"""
Measurement Type Dispatcher

Maps a requested measurement type onto the field set it emphasizes and the
refinements applied before computing. Every type produces the complete
result; the type only decides which quantities are estimated rather than
defaulted and how the facial midline is taken.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple, Union

from . import geometry
from .calibration import CalibrationResult
from .errors import InputError
from .landmarks import NOSE_RIDGE, LandmarkSet, Point
from .result import MeasurementResult
from .utils import MAX_PLAUSIBLE_PD_MM, MIN_PLAUSIBLE_PD_MM

logger = logging.getLogger(__name__)


class MeasurementType(str, Enum):
    PD = "pd"
    MONOCULAR_PD = "monocular_pd"
    OPTICAL_CENTER = "optical_center"
    CALIBRATION_OBJECT = "calibration_object"
    SEGMENT_HEIGHT = "segment_height"
    BRIDGE_WIDTH = "bridge_width"
    TEMPLE_LENGTH = "temple_length"
    PANTOSCOPIC_TILT = "pantoscopic_tilt"
    WRAP_ANGLE = "wrap_angle"
    DEFAULT = "default"

    @classmethod
    def parse(cls, value: Union[str, "MeasurementType", None]) -> "MeasurementType":
        """
        Parse a requested type. None or an empty string selects DEFAULT.

        Raises:
            InputError: unknown type name
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.DEFAULT

        name = str(value).strip().lower()
        if not name:
            return cls.DEFAULT
        name = TYPE_ALIASES.get(name, name)

        try:
            return cls(name)
        except ValueError:
            raise InputError(f"Unknown measurement type: {value!r}") from None


# Names used by the clinic web client
TYPE_ALIASES = {
    "pd_measurement": MeasurementType.PD.value,
    "dpn_measurement": MeasurementType.MONOCULAR_PD.value,
    "card_measurement": MeasurementType.CALIBRATION_OBJECT.value,
}

# Quantities with a closed-form estimate that only the matching type computes
TYPE_SPECIFIC_FIELDS = ("temple_length", "pantoscopic_tilt", "wrap_angle")


def ridge_midline_x(nose: Sequence[Point]) -> float:
    """Mean x of the nose ridge points."""
    return sum(nose[i][0] for i in NOSE_RIDGE) / len(NOSE_RIDGE)


@dataclass(frozen=True)
class TypeProfile:
    """Dispatch table entry."""
    emphasized_fields: Tuple[str, ...]
    estimated_field: Optional[str] = None
    midline: Callable[[Sequence[Point]], float] = geometry.midline_x


PROFILES = {
    MeasurementType.PD: TypeProfile(("pupillary_distance",)),
    MeasurementType.MONOCULAR_PD: TypeProfile(
        ("monocular_pd_right", "monocular_pd_left"),
        midline=ridge_midline_x,
    ),
    MeasurementType.OPTICAL_CENTER: TypeProfile(("optical_center_right", "optical_center_left")),
    MeasurementType.CALIBRATION_OBJECT: TypeProfile(("pupillary_distance", "pixel_to_mm_ratio")),
    MeasurementType.SEGMENT_HEIGHT: TypeProfile(("segment_height_right", "segment_height_left")),
    MeasurementType.BRIDGE_WIDTH: TypeProfile(("bridge_width", "nose_bridge_width")),
    MeasurementType.TEMPLE_LENGTH: TypeProfile(("temple_length",), estimated_field="temple_length"),
    MeasurementType.PANTOSCOPIC_TILT: TypeProfile(("pantoscopic_tilt",), estimated_field="pantoscopic_tilt"),
    MeasurementType.WRAP_ANGLE: TypeProfile(("wrap_angle",), estimated_field="wrap_angle"),
    MeasurementType.DEFAULT: TypeProfile((
        "pupillary_distance",
        "monocular_pd_right",
        "monocular_pd_left",
        "segment_height_right",
        "segment_height_left",
    )),
}


def compute(
    landmarks: LandmarkSet,
    calibration: CalibrationResult,
    measurement_type: Union[str, MeasurementType, None],
    image_size: Tuple[int, int]
) -> MeasurementResult:
    """
    Compute the full measurement record for one landmark set.

    Args:
        landmarks: Detected landmarks in working-image pixels
        calibration: Resolved pixel-to-mm conversion for the same image
        measurement_type: Requested type (name, alias or enum)
        image_size: (width, height) of the working image

    Returns:
        MeasurementResult with quality fields left at their defaults
    """
    mtype = MeasurementType.parse(measurement_type)
    profile = PROFILES[mtype]
    ratio = calibration.ratio

    left_pupil = geometry.pupil_center(landmarks.left_eye)
    right_pupil = geometry.pupil_center(landmarks.right_eye)
    jaw = landmarks.jaw_outline

    pd = geometry.pupillary_distance(left_pupil, right_pupil, ratio)
    midline = profile.midline(landmarks.nose)
    face_w = geometry.face_width(jaw, ratio)
    face_h = geometry.face_height(jaw, ratio)
    seg_right = geometry.segment_height(right_pupil, jaw, ratio)
    seg_left = geometry.segment_height(left_pupil, jaw, ratio)

    estimators = {
        "temple_length": lambda: geometry.temple_length(face_w),
        "pantoscopic_tilt": lambda: geometry.pantoscopic_tilt(left_pupil, right_pupil),
        "wrap_angle": lambda: geometry.wrap_angle(face_w, face_h),
    }
    estimates = {"bridge_width": geometry.bridge_width(pd)}
    for name in TYPE_SPECIFIC_FIELDS:
        if name == profile.estimated_field:
            estimates[name] = estimators[name]()
        else:
            estimates[name] = geometry.default_estimate(name)
    estimates["vertex_distance"] = geometry.vertex_distance()

    defaulted = tuple(name for name, estimate in estimates.items() if estimate.defaulted)

    warnings = []
    needs_review = not (MIN_PLAUSIBLE_PD_MM <= pd <= MAX_PLAUSIBLE_PD_MM)
    if needs_review:
        warnings.append(
            f"Pupillary distance {pd:.1f}mm is outside the plausible range "
            f"{MIN_PLAUSIBLE_PD_MM:.0f}-{MAX_PLAUSIBLE_PD_MM:.0f}mm"
        )
    if not calibration.is_grounded:
        warnings.append("No reference object used; millimeter values are approximate")

    logger.debug(
        f"[Dispatcher] type={mtype.value} PD={pd:.2f}mm ratio={ratio:.4f} "
        f"defaulted={','.join(defaulted)}"
    )

    return MeasurementResult(
        pupillary_distance=pd,
        monocular_pd_right=geometry.monocular_pd(right_pupil, midline, ratio),
        monocular_pd_left=geometry.monocular_pd(left_pupil, midline, ratio),
        optical_center_right=geometry.optical_center(right_pupil, image_size, ratio),
        optical_center_left=geometry.optical_center(left_pupil, image_size, ratio),
        segment_height_right=seg_right,
        segment_height_left=seg_left,
        face_width=face_w,
        face_height=face_h,
        nose_bridge_width=geometry.nose_bridge_width(landmarks.nose, ratio),
        bridge_width=estimates["bridge_width"].value,
        temple_length=estimates["temple_length"].value,
        pantoscopic_tilt=estimates["pantoscopic_tilt"].value,
        wrap_angle=estimates["wrap_angle"].value,
        vertex_distance=estimates["vertex_distance"].value,
        frame_width=pd + geometry.FRAME_WIDTH_MARGIN_MM,
        frame_height=(seg_right + seg_left) / 2 + geometry.FRAME_HEIGHT_MARGIN_MM,
        measurement_type=mtype.value,
        emphasized_fields=profile.emphasized_fields,
        defaulted_fields=defaulted,
        calibration_method=calibration.method,
        pixel_to_mm_ratio=ratio,
        landmark_source=landmarks.source,
        left_pupil_px=left_pupil,
        right_pupil_px=right_pupil,
        needs_review=needs_review,
        warnings=tuple(warnings),
        landmarks=landmarks,
    )
