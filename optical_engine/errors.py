"""
Engine error taxonomy.

Every failure surfaced by ``OpticalMeasurementEngine.measure`` is one of these
classes. Each carries a stable ``kind`` used by the outbound error object.
"""


class OpticalEngineError(Exception):
    """Base class for all engine failures."""

    kind = "engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InputError(OpticalEngineError):
    """Image payload missing, corrupt or undecodable, or an invalid request field."""

    kind = "input_error"


class DetectionError(OpticalEngineError):
    """No face or landmarks found. The caller should prompt for a new capture."""

    kind = "detection_error"


class CalibrationError(OpticalEngineError):
    """A calibration hint was supplied but its reference object could not be measured."""

    kind = "calibration_error"


class InitializationError(OpticalEngineError):
    """The landmark model failed to load. Fatal for the process."""

    kind = "initialization_error"
