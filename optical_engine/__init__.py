"""
Optical Measurement Engine

Derives optical fitting measurements (pupillary distance, optical centers,
segment height, frame fitting estimates) from a single facial image and an
optional calibration reference.
"""

from .calibration import CalibrationReference, CalibrationResolver, CalibrationResult
from .core import OpticalMeasurementEngine, decode_image
from .dispatcher import MeasurementType
from .errors import (
    CalibrationError,
    DetectionError,
    InitializationError,
    InputError,
    OpticalEngineError,
)
from .landmarks import DetectionFailure, LandmarkProvider, LandmarkSet, create_landmark_provider
from .result import MeasurementResult

__version__ = "0.1.0"
__all__ = [
    "OpticalMeasurementEngine",
    "MeasurementResult",
    "MeasurementType",
    "CalibrationReference",
    "CalibrationResolver",
    "CalibrationResult",
    "LandmarkProvider",
    "LandmarkSet",
    "DetectionFailure",
    "create_landmark_provider",
    "decode_image",
    "OpticalEngineError",
    "InputError",
    "DetectionError",
    "CalibrationError",
    "InitializationError",
]
