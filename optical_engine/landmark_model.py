"""
Trained-model Landmark Provider

Uses MediaPipe FaceLandmarker (Tasks API) with refined iris landmarks and
maps the face mesh onto the engine's eye / nose / jaw point conventions.

The FaceLandmarker is loaded once per process. Concurrent first requests
wait on the same load instead of starting their own, and a failed load is
remembered so later callers fail fast with the same InitializationError.
"""

import logging
import math
import os
import threading
from typing import Optional, Tuple

import cv2
import numpy as np

from .config import FACE_LANDMARKER_MODEL, FACE_LANDMARKER_URL, MIN_DETECTION_CONFIDENCE
from .errors import InitializationError
from .landmarks import (
    DetectionFailure,
    DetectionOutcome,
    LandmarkProvider,
    LandmarkSet,
    SOURCE_MODEL,
)
from .utils import euclidean_distance, calculate_angle

logger = logging.getLogger(__name__)


# Refined iris landmarks: center followed by the four boundary points
IRIS_A = [468, 469, 470, 471, 472]
IRIS_B = [473, 474, 475, 476, 477]

# Nose: ridge from the bridge top down, then outer/inner alar points on each
# side around the subnasale (2)
NOSE_RIDGE = [168, 6, 197, 195]
NOSE_SIDE_A = [98, 97]  # outer, inner
NOSE_SIDE_B = [327, 326]  # outer, inner
SUBNASALE = 2
NOSE_TIP = 1

# Lower face oval, ear to ear through the chin (152)
JAW_OUTLINE = [
    234, 93, 132, 58, 172, 136, 150, 149, 176, 148, 152,
    377, 400, 378, 379, 365, 397, 288, 361, 323, 454,
]

BASE_CONFIDENCE = 0.9


class MediaPipeLandmarkProvider(LandmarkProvider):
    """
    Landmark detection using MediaPipe Face Mesh with refined iris landmarks.

    Pupil centers come from the iris landmarks, which are robust against
    eyelid occlusion. Results are deterministic for a given image.
    """

    source = SOURCE_MODEL

    # Process-wide model cache
    _face_landmarker = None
    _mp = None
    _load_error: Optional[str] = None
    _load_lock = threading.Lock()
    _inference_lock = threading.Lock()

    def __init__(
        self,
        model_path: Optional[str] = None,
        min_detection_confidence: float = MIN_DETECTION_CONFIDENCE
    ):
        """
        Initialize the provider, loading the shared model on first use.

        Args:
            model_path: Path to face_landmarker.task
            min_detection_confidence: Minimum face detection confidence

        Raises:
            InitializationError: if the model cannot be loaded
        """
        self.model_path = model_path or FACE_LANDMARKER_MODEL
        self.min_detection_confidence = min_detection_confidence
        self.face_landmarker = self._load_face_landmarker(
            self.model_path, self.min_detection_confidence
        )

    @classmethod
    def _load_face_landmarker(cls, model_path: str, min_detection_confidence: float):
        """Return the shared FaceLandmarker, loading it exactly once."""
        with cls._load_lock:
            if cls._face_landmarker is not None:
                return cls._face_landmarker
            if cls._load_error is not None:
                raise InitializationError(cls._load_error)

            logger.info(f"[LandmarkModel] Loading FaceLandmarker from {model_path}")
            try:
                cls._face_landmarker = cls._create_face_landmarker(
                    model_path, min_detection_confidence
                )
            except InitializationError as e:
                cls._load_error = e.message
                logger.error(f"[LandmarkModel] {e.message}")
                raise

            logger.info("[LandmarkModel] FaceLandmarker initialized")
            return cls._face_landmarker

    @classmethod
    def _create_face_landmarker(cls, model_path: str, min_detection_confidence: float):
        if not os.path.exists(model_path):
            raise InitializationError(
                f"Face landmarker model not found at {model_path}. "
                f"Download from: {FACE_LANDMARKER_URL}"
            )

        try:
            import mediapipe as mp
        except ImportError as e:
            raise InitializationError(f"MediaPipe is not available: {e}") from e

        base_options = mp.tasks.BaseOptions(model_asset_path=model_path)
        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=mp.tasks.vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=min_detection_confidence,
            min_face_presence_confidence=min_detection_confidence,
            min_tracking_confidence=min_detection_confidence,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False
        )
        try:
            landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        except (RuntimeError, ValueError) as e:
            raise InitializationError(f"Failed to create FaceLandmarker: {e}") from e

        cls._mp = mp
        return landmarker

    def detect(self, image: np.ndarray) -> DetectionOutcome:
        """
        Detect face landmarks and map them onto the engine conventions.

        Args:
            image: BGR input image

        Returns:
            LandmarkSet, or DetectionFailure when no face is found
        """
        mp = self._mp
        rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_image)

        with self._inference_lock:
            results = self.face_landmarker.detect(mp_image)

        if not results.face_landmarks:
            return DetectionFailure("No face detected in image", self.source)

        h, w = image.shape[:2]
        landmarks_px = np.array([
            [lm.x * w, lm.y * h]
            for lm in results.face_landmarks[0]
        ])

        if len(landmarks_px) <= max(IRIS_B):
            return DetectionFailure(
                "Iris landmarks not available. The model must output refined landmarks",
                self.source
            )

        return self._to_landmark_set(landmarks_px)

    def _to_landmark_set(self, landmarks_px: np.ndarray) -> LandmarkSet:
        """Map face mesh pixel coordinates onto a LandmarkSet."""
        iris_a = landmarks_px[IRIS_A]
        iris_b = landmarks_px[IRIS_B]

        # Image-space sides: left eye is the one with the smaller x
        if iris_a[:, 0].mean() <= iris_b[:, 0].mean():
            left_eye, right_eye = iris_a, iris_b
        else:
            left_eye, right_eye = iris_b, iris_a

        side_a = landmarks_px[NOSE_SIDE_A]
        side_b = landmarks_px[NOSE_SIDE_B][::-1]  # inner, outer
        if side_a[0, 0] <= side_b[-1, 0]:
            nostril_base = np.vstack([side_a, landmarks_px[[SUBNASALE]], side_b])
        else:
            nostril_base = np.vstack([
                side_b[::-1], landmarks_px[[SUBNASALE]], side_a[::-1]
            ])
        nose = np.vstack([landmarks_px[NOSE_RIDGE], nostril_base])

        jaw = landmarks_px[JAW_OUTLINE]
        if jaw[0, 0] > jaw[-1, 0]:
            jaw = jaw[::-1]

        roll, yaw = self._estimate_head_pose(
            left_eye.mean(axis=0), right_eye.mean(axis=0), landmarks_px[NOSE_TIP]
        )
        confidence = self._calculate_confidence(roll, yaw)
        logger.debug(
            f"[LandmarkModel] roll={roll:.1f} yaw={yaw:.1f} confidence={confidence:.2f}"
        )

        return LandmarkSet.from_points(
            left_eye=left_eye,
            right_eye=right_eye,
            nose=nose,
            jaw_outline=jaw,
            confidence=confidence,
            source=self.source,
        )

    @staticmethod
    def _estimate_head_pose(
        left_pupil: np.ndarray,
        right_pupil: np.ndarray,
        nose_tip: np.ndarray
    ) -> Tuple[float, float]:
        """
        Estimate head roll and yaw in degrees from 2D landmarks.

        Roll is the angle of the line connecting the pupils. Yaw comes from
        the nose tip offset relative to the pupil midpoint, normalized by half
        the pupil span (a 45 degree turn moves the nose about half that span).
        """
        roll = calculate_angle(tuple(left_pupil), tuple(right_pupil))

        eye_width = euclidean_distance(tuple(left_pupil), tuple(right_pupil))
        if eye_width <= 0:
            return roll, 0.0

        eye_center_x = (left_pupil[0] + right_pupil[0]) / 2
        yaw_ratio = (nose_tip[0] - eye_center_x) / (eye_width * 0.5)
        yaw = math.degrees(math.asin(max(-1.0, min(1.0, yaw_ratio * 0.7))))

        return roll, yaw

    @staticmethod
    def _calculate_confidence(roll: float, yaw: float) -> float:
        """Confidence for a successful detection, reduced by head rotation."""
        confidence = BASE_CONFIDENCE
        confidence -= min(abs(yaw) / 45.0, 0.3)
        confidence -= min(abs(roll) / 45.0, 0.2)
        return max(0.0, min(1.0, confidence))
