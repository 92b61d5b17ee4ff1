"""
Core Optical Measurement Engine

This module provides the OpticalMeasurementEngine facade that runs landmark
detection, calibration, per-type geometry and quality assessment as one
atomic call.
"""

import base64
import binascii
import io
import logging
from dataclasses import replace
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .calibration import CalibrationReference, CalibrationResolver
from .config import LANDMARK_STRATEGY, MAX_IMAGE_DIMENSION, MAX_IMAGE_PIXELS
from .dispatcher import MeasurementType, compute
from .errors import DetectionError, InputError
from .landmarks import DetectionFailure, LandmarkProvider, create_landmark_provider
from .quality import assess
from .result import MeasurementResult
from .utils import draw_landmarks_on_image

logger = logging.getLogger(__name__)


# Quality multiplier for a pupillary distance outside the plausible envelope
OUT_OF_RANGE_QUALITY_FACTOR = 0.5

ImageInput = Union[np.ndarray, bytes, str]
HintInput = Union[CalibrationReference, Mapping, None]


def _check_pixel_count(width: int, height: int):
    if width * height > MAX_IMAGE_PIXELS:
        raise InputError(
            f"Image is {width}x{height}, larger than the {MAX_IMAGE_PIXELS} pixel limit"
        )


def _check_declared_size(data: bytes):
    """Reject oversized frames from the header alone, before any pixel is decoded."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except Image.DecompressionBombError as e:
        raise InputError(f"Image is too large: {e}") from e
    except (UnidentifiedImageError, OSError):
        # Leave unknown formats to OpenCV
        return
    _check_pixel_count(width, height)


def decode_image(data: Union[bytes, str]) -> np.ndarray:
    """
    Decode an encoded image into a BGR array.

    Args:
        data: Raw file bytes, a base64 string or a data URL

    Raises:
        InputError: empty, not base64, too large or not a decodable image
    """
    if isinstance(data, str):
        if ',' in data and data.lstrip().startswith('data:'):
            data = data.split(',', 1)[1]
        data = data.strip()
        if not data:
            raise InputError("Image payload is empty")
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InputError(f"Image payload is not valid base64: {e}") from e

    if not data:
        raise InputError("Image payload is empty")

    _check_declared_size(data)

    nparr = np.frombuffer(data, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image is None:
        raise InputError("Failed to decode image")
    _check_pixel_count(image.shape[1], image.shape[0])

    return image


def load_image(image: ImageInput) -> np.ndarray:
    """Accept an array or an encoded payload and return a BGR array."""
    if not isinstance(image, np.ndarray):
        return decode_image(image)

    if image.size == 0:
        raise InputError("Image is empty")
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image

    raise InputError(f"Unsupported image shape {image.shape}")


def coerce_hint(calibration_hint: HintInput) -> Optional[CalibrationReference]:
    if calibration_hint is None or isinstance(calibration_hint, CalibrationReference):
        return calibration_hint
    if isinstance(calibration_hint, Mapping):
        return CalibrationReference.from_dict(dict(calibration_hint))
    raise InputError("Calibration hint must be an object")


class OpticalMeasurementEngine:
    """
    Main engine for optical measurements from a single facial image.

    Usage:
        with OpticalMeasurementEngine() as engine:
            result = engine.measure(image, {"objectType": "credit_card", "realSizeMm": 85.6})
            print(f"PD: {result.pupillary_distance:.1f}mm")
    """

    def __init__(
        self,
        landmark_provider: Optional[LandmarkProvider] = None,
        calibration_resolver: Optional[CalibrationResolver] = None,
        strategy: str = LANDMARK_STRATEGY,
        max_image_dimension: int = MAX_IMAGE_DIMENSION
    ):
        """
        Initialize the engine.

        Args:
            landmark_provider: Provider to use; built from strategy when omitted
            calibration_resolver: Resolver to use; default settings when omitted
            strategy: "mediapipe" or "heuristic"
            max_image_dimension: Longer image side is downscaled to this

        Raises:
            InitializationError: the trained landmark model could not be loaded
        """
        self.landmark_provider = landmark_provider or create_landmark_provider(strategy)
        self.calibration_resolver = calibration_resolver or CalibrationResolver()
        self.max_image_dimension = max_image_dimension

    def measure(
        self,
        image: ImageInput,
        calibration_hint: HintInput = None,
        measurement_type: Union[str, MeasurementType, None] = None
    ) -> MeasurementResult:
        """
        Measure one image.

        Args:
            image: BGR array, encoded bytes, base64 string or data URL
            calibration_hint: Optional reference object (CalibrationReference or dict)
            measurement_type: Requested type; None selects the default

        Returns:
            MeasurementResult

        Raises:
            InputError, DetectionError, CalibrationError
        """
        frame = load_image(image)
        mtype = MeasurementType.parse(measurement_type)
        hint = coerce_hint(calibration_hint)

        working, pixel_scale = self._cap_resolution(frame)

        outcome = self.landmark_provider.detect(working)
        if isinstance(outcome, DetectionFailure):
            logger.info(f"[Engine] Detection failed ({outcome.source}): {outcome.reason}")
            raise DetectionError(outcome.reason)

        if hint is None and mtype is MeasurementType.CALIBRATION_OBJECT:
            calibration = self.calibration_resolver.resolve_from_image(working, pixel_scale)
        else:
            calibration = self.calibration_resolver.resolve(working, hint, pixel_scale)

        h, w = working.shape[:2]
        result = compute(outcome, calibration, mtype, (w, h))
        quality = assess(outcome, working, calibration)

        measurement_quality = quality.measurement_quality
        if result.needs_review:
            measurement_quality *= OUT_OF_RANGE_QUALITY_FACTOR

        logger.info(
            f"[Engine] {mtype.value}: PD={result.pupillary_distance:.2f}mm "
            f"calibration={calibration.method} quality={measurement_quality:.2f}"
        )

        return replace(
            result,
            measurement_quality=measurement_quality,
            face_detection_confidence=quality.face_detection_confidence,
            lighting_condition=quality.lighting_condition,
        )

    def process_image(
        self,
        image_path: Union[str, Path],
        calibration_hint: HintInput = None,
        measurement_type: Union[str, MeasurementType, None] = None
    ) -> MeasurementResult:
        """Measure an image file."""
        image_path = Path(image_path)
        if not image_path.exists():
            raise InputError(f"Image not found: {image_path}")

        image = cv2.imread(str(image_path))
        if image is None:
            raise InputError(f"Failed to load image: {image_path}")

        return self.measure(image, calibration_hint, measurement_type)

    def visualize(self, image: np.ndarray, result: MeasurementResult) -> np.ndarray:
        """
        Draw the landmarks behind a result.

        Landmark coordinates are in working-image pixels, so the drawing is
        done on the same downscaled copy the engine measured.
        """
        working, _ = self._cap_resolution(load_image(image))
        landmarks = result.landmarks
        return draw_landmarks_on_image(
            working,
            pupil_left=result.left_pupil_px,
            pupil_right=result.right_pupil_px,
            nose=landmarks.nose if landmarks else None,
            jaw_outline=landmarks.jaw_outline if landmarks else None,
            pd_mm=result.pupillary_distance,
        )

    def _cap_resolution(self, frame: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Downscale so the longer side is at most max_image_dimension.

        Returns:
            (working image, working pixels per submitted pixel)
        """
        h, w = frame.shape[:2]
        longest = max(h, w)
        if not self.max_image_dimension or longest <= self.max_image_dimension:
            return frame, 1.0

        scale = self.max_image_dimension / longest
        size = (max(1, round(w * scale)), max(1, round(h * scale)))
        logger.debug(f"[Engine] Downscaling {w}x{h} to {size[0]}x{size[1]}")
        return cv2.resize(frame, size, interpolation=cv2.INTER_AREA), scale

    def close(self):
        """Release resources."""
        self.landmark_provider.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
