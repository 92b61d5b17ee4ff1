"""
Calibration Module - Pixel to Millimeter Resolution

Two calibration modes are supported:

1. Reference object (physically grounded): a known object in frame, either
   measured by the caller (pixel_width) or located in the image by edge
   and contour analysis. ratio = real_size_mm / measured_pixel_width
2. Default (approximation): a fixed mm-per-pixel value derived from a nominal
   capture density. It does not adapt to subject distance.

ISO/IEC 7810 ID-1 Card Dimensions:
- Width: 85.60 mm
- Height: 53.98 mm
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from .config import DEFAULT_DPI, REFERENCE_MIN_CONFIDENCE
from .errors import CalibrationError, InputError
from .utils import (
    ASPECT_RATIO_TOLERANCE,
    CARD_ASPECT_RATIO,
    CARD_WIDTH_MM,
    MIN_CARD_AREA_RATIO,
    order_corners,
    preprocess_for_card_detection,
    quad_side_lengths,
    ratio_from_dpi,
    to_gray,
    validate_aspect_ratio,
)

logger = logging.getLogger(__name__)


CARD_OBJECT_TYPES = ("credit_card", "id_card")
COIN_OBJECT_TYPES = ("coin",)

METHOD_REFERENCE = "reference"
METHOD_DETECTED_OBJECT = "detected_object"
METHOD_DEFAULT = "default"

MIN_RECTANGULARITY = 0.85  # contour area / min-area-rect area
MAX_OBJECT_AREA_RATIO = 0.9  # Larger contours are the frame border, not an object
MIN_COIN_CIRCULARITY = 0.85  # contour area / enclosing-circle area
MIN_COIN_AREA_PX = 80


def _positive_finite(value) -> bool:
    return value is not None and math.isfinite(value) and value > 0


@dataclass(frozen=True)
class CalibrationReference:
    """A physical object of known size expected in frame."""
    object_type: str
    real_size_mm: float
    pixel_width: Optional[float] = None  # Caller-measured extent, in submitted-image pixels

    def __post_init__(self):
        if not _positive_finite(self.real_size_mm):
            raise InputError("Calibration realSizeMm must be a positive number")
        if self.pixel_width is not None and not _positive_finite(self.pixel_width):
            raise InputError("Calibration pixelWidth must be a positive number")

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationReference":
        """Build from an inbound hint, accepting camelCase or snake_case keys."""
        try:
            object_type = data.get("objectType", data.get("object_type", "")) or ""
            real_size = data.get("realSizeMm", data.get("real_size_mm"))
            pixel_width = data.get("pixelWidth", data.get("pixel_width"))
            return cls(
                object_type=str(object_type).strip().lower(),
                real_size_mm=float(real_size) if real_size is not None else 0.0,
                pixel_width=float(pixel_width) if pixel_width is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid calibration hint: {e}") from e


@dataclass
class ReferenceDetection:
    """Result of locating a reference object in the image."""
    detected: bool
    corners: Optional[np.ndarray] = None  # TL, TR, BR, BL for rectangular objects
    width_px: Optional[float] = None  # Long side, or diameter for coins
    height_px: Optional[float] = None
    confidence: float = 0.0
    error_message: Optional[str] = None


def _circle_detection(contour: np.ndarray) -> ReferenceDetection:
    """Diameter from the enclosing circle, confidence from how much of it the blob fills."""
    _, radius = cv2.minEnclosingCircle(contour)
    if radius <= 0:
        return ReferenceDetection(detected=False, error_message="Degenerate circular contour")

    circularity = cv2.contourArea(contour) / (math.pi * radius ** 2)
    if circularity < MIN_COIN_CIRCULARITY:
        return ReferenceDetection(
            detected=False,
            error_message=f"Blob is not circular (fill {circularity:.2f})"
        )

    return ReferenceDetection(
        detected=True,
        width_px=float(2 * radius),
        height_px=float(2 * radius),
        confidence=float(min(circularity, 1.0)),
    )


@dataclass(frozen=True)
class CalibrationResult:
    """Resolved pixel-to-millimeter conversion and its provenance."""
    ratio: float  # mm per pixel of the working image
    method: str
    is_grounded: bool
    confidence: float = 0.0
    reference_width_px: Optional[float] = None
    object_type: Optional[str] = None

    def __post_init__(self):
        if not (math.isfinite(self.ratio) and self.ratio > 0):
            raise ValueError(f"Pixel-to-mm ratio must be positive, got {self.ratio}")


class CalibrationResolver:
    """
    Resolves the pixel-to-millimeter ratio for one image.

    The reference path is always preferred when a hint is given; a hint whose
    object cannot be measured raises CalibrationError instead of silently
    falling back to the default.
    """

    def __init__(
        self,
        default_dpi: float = DEFAULT_DPI,
        min_detection_confidence: float = REFERENCE_MIN_CONFIDENCE
    ):
        if default_dpi <= 0:
            raise ValueError("default_dpi must be positive")
        self.default_ratio = ratio_from_dpi(default_dpi)
        self.min_detection_confidence = min_detection_confidence

    def resolve(
        self,
        image: np.ndarray,
        calibration_hint: Optional[CalibrationReference] = None,
        pixel_scale: float = 1.0
    ) -> CalibrationResult:
        """
        Resolve the ratio for an image.

        Args:
            image: BGR working image
            calibration_hint: Optional reference object description
            pixel_scale: Working-image pixels per submitted-image pixel

        Returns:
            CalibrationResult

        Raises:
            CalibrationError: hint supplied but its object could not be measured
        """
        if calibration_hint is None:
            return self.default(pixel_scale)

        if calibration_hint.pixel_width is not None:
            width_px = calibration_hint.pixel_width * pixel_scale
            if not _positive_finite(calibration_hint.real_size_mm / width_px):
                raise InputError("Calibration hint does not give a usable pixel-to-mm ratio")
            logger.info(
                f"[Calibration] Using caller-measured {calibration_hint.object_type or 'reference'} "
                f"width {calibration_hint.pixel_width:.1f}px"
            )
            return CalibrationResult(
                ratio=calibration_hint.real_size_mm / width_px,
                method=METHOD_REFERENCE,
                is_grounded=True,
                confidence=1.0,
                reference_width_px=width_px,
                object_type=calibration_hint.object_type,
            )

        detection = self.detect_reference_object(image, calibration_hint.object_type)
        if not detection.detected:
            raise CalibrationError(
                f"Could not locate the {calibration_hint.object_type or 'reference'} object "
                f"in the image: {detection.error_message}"
            )

        logger.info(
            f"[Calibration] Reference {calibration_hint.object_type} measured at "
            f"{detection.width_px:.1f}px (confidence {detection.confidence:.2f})"
        )
        return CalibrationResult(
            ratio=calibration_hint.real_size_mm / detection.width_px,
            method=METHOD_REFERENCE,
            is_grounded=True,
            confidence=detection.confidence,
            reference_width_px=detection.width_px,
            object_type=calibration_hint.object_type,
        )

    def resolve_from_image(self, image: np.ndarray, pixel_scale: float = 1.0) -> CalibrationResult:
        """
        Look for an ID-1 card without a hint; fall back to the default ratio
        when the detection is not confident enough.
        """
        detection = self.detect_reference_object(image, "credit_card")

        if detection.detected and detection.confidence >= self.min_detection_confidence:
            logger.info(
                f"[Calibration] Card detected at {detection.width_px:.1f}px "
                f"(confidence {detection.confidence:.2f})"
            )
            return CalibrationResult(
                ratio=CARD_WIDTH_MM / detection.width_px,
                method=METHOD_DETECTED_OBJECT,
                is_grounded=True,
                confidence=detection.confidence,
                reference_width_px=detection.width_px,
                object_type="credit_card",
            )

        logger.info(
            f"[Calibration] No confident card detection "
            f"({detection.error_message or f'confidence {detection.confidence:.2f}'}), using default ratio"
        )
        return self.default(pixel_scale)

    def default(self, pixel_scale: float = 1.0) -> CalibrationResult:
        """Fixed approximation from the nominal capture density."""
        return CalibrationResult(
            ratio=self.default_ratio / pixel_scale,
            method=METHOD_DEFAULT,
            is_grounded=False,
        )

    def detect_reference_object(
        self,
        image: np.ndarray,
        object_type: Optional[str] = None
    ) -> ReferenceDetection:
        """
        Locate a reference object by edge and contour analysis.

        Cards are matched against the ID-1 aspect ratio, coins are found as
        circles, anything else is taken as the largest clean rectangle.
        """
        object_type = (object_type or "").lower()

        if object_type in COIN_OBJECT_TYPES:
            return self._detect_coin(image)

        candidates = self._detect_rectangles(image)
        if not candidates:
            return ReferenceDetection(detected=False, error_message="No rectangular object found")

        if object_type in CARD_OBJECT_TYPES:
            return self._select_card(candidates)

        best = max(candidates, key=lambda c: c.width_px * c.height_px)
        return best

    def _detect_rectangles(self, image: np.ndarray) -> List[ReferenceDetection]:
        """Closed, nearly rectangular contours of plausible size."""
        h, w = image.shape[:2]
        _, edges = preprocess_for_card_detection(image)

        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        candidates = []
        for contour in contours:
            area = cv2.contourArea(contour)
            if area < MIN_CARD_AREA_RATIO * h * w or area > MAX_OBJECT_AREA_RATIO * h * w:
                continue

            rect = cv2.minAreaRect(contour)
            rect_w, rect_h = rect[1]
            if rect_w <= 0 or rect_h <= 0:
                continue
            rectangularity = area / (rect_w * rect_h)
            if rectangularity < MIN_RECTANGULARITY:
                continue

            epsilon = 0.02 * cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, epsilon, True)
            if len(approx) == 4 and cv2.isContourConvex(approx):
                corners = order_corners(approx.reshape(4, 2).astype(np.float32))
            else:
                corners = order_corners(cv2.boxPoints(rect).astype(np.float32))

            if not self._validate_corners(corners):
                continue

            width_px, height_px = quad_side_lengths(corners)
            candidates.append(ReferenceDetection(
                detected=True,
                corners=corners,
                width_px=width_px,
                height_px=height_px,
                confidence=float(min(rectangularity, 1.0)),
            ))

        return candidates

    @staticmethod
    def _validate_corners(corners: np.ndarray) -> bool:
        """Validate that corners form a reasonable rectangle."""
        if corners.shape != (4, 2):
            return False

        width, height = quad_side_lengths(corners)
        if height == 0:
            return False

        if width < 20 or height < 10:
            return False

        return True

    @staticmethod
    def _select_card(candidates: List[ReferenceDetection]) -> ReferenceDetection:
        """Candidate closest to the ID-1 aspect ratio, scored by aspect error."""
        def aspect_error(c: ReferenceDetection) -> float:
            return abs(c.width_px / c.height_px - CARD_ASPECT_RATIO)

        best = min(candidates, key=aspect_error)
        if not validate_aspect_ratio(best.width_px, best.height_px, CARD_ASPECT_RATIO, ASPECT_RATIO_TOLERANCE):
            return ReferenceDetection(
                detected=False,
                error_message=(
                    f"No card-shaped object (best aspect {best.width_px / best.height_px:.2f}, "
                    f"expected {CARD_ASPECT_RATIO:.3f})"
                )
            )

        best.confidence = best.confidence * (1.0 - aspect_error(best) / ASPECT_RATIO_TOLERANCE)
        return best

    @staticmethod
    def _detect_coin(image: np.ndarray) -> ReferenceDetection:
        """
        Largest circular blob, seeded by the Hough transform.

        The Hough radius only locates the coin; its diameter is measured from
        the thresholded blob.
        """
        h, w = image.shape[:2]
        gray = to_gray(image)

        circles = cv2.HoughCircles(
            cv2.medianBlur(gray, 5),
            cv2.HOUGH_GRADIENT,
            dp=1,
            minDist=max(min(h, w) // 4, 1),
            param1=100,
            param2=max(15, min(h, w) // 20),
            minRadius=5,
            maxRadius=min(h, w) // 2
        )

        seeds = [] if circles is None else sorted(circles[0], key=lambda c: c[2], reverse=True)
        for x, y, r in seeds:
            detection = CalibrationResolver._refine_circle(gray, float(x), float(y), float(r))
            if detection.detected:
                return detection

        # Hough misses low-contrast or small discs; fall back to plain contours
        return CalibrationResolver._circle_from_contours(gray)

    @staticmethod
    def _refine_circle(gray: np.ndarray, x: float, y: float, r: float) -> ReferenceDetection:
        """Measure the blob around a Hough seed with an Otsu threshold."""
        h, w = gray.shape[:2]
        margin = int(round(1.5 * r))
        x0, y0 = max(int(x) - margin, 0), max(int(y) - margin, 0)
        x1, y1 = min(int(x) + margin + 1, w), min(int(y) + margin + 1, h)
        window = gray[y0:y1, x0:x1]
        cx, cy = int(x) - x0, int(y) - y0

        threshold, mask = cv2.threshold(window, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        inner = max(int(r / 2), 1)
        inner_mean = float(window[max(cy - inner, 0):cy + inner, max(cx - inner, 0):cx + inner].mean())
        if inner_mean <= threshold:
            mask = cv2.bitwise_not(mask)

        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
        enclosing = [c for c in contours if cv2.pointPolygonTest(c, (float(cx), float(cy)), False) >= 0]
        if not enclosing:
            return ReferenceDetection(detected=False, error_message="Circle seed has no enclosing blob")

        return _circle_detection(max(enclosing, key=cv2.contourArea))

    @staticmethod
    def _circle_from_contours(gray: np.ndarray) -> ReferenceDetection:
        """Largest circular blob of either polarity over the whole frame."""
        h, w = gray.shape[:2]
        _, mask = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

        best = None
        for candidate in (mask, cv2.bitwise_not(mask)):
            contours, _ = cv2.findContours(candidate, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
            for contour in contours:
                area = cv2.contourArea(contour)
                if area < MIN_COIN_AREA_PX or area > MAX_OBJECT_AREA_RATIO * h * w:
                    continue
                detection = _circle_detection(contour)
                if detection.detected and (best is None or detection.width_px > best.width_px):
                    best = detection

        if best is None:
            return ReferenceDetection(detected=False, error_message="No circular object found")
        return best
