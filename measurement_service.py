"""
Measurement service: inbound payload in, serialized result or error out.
"""

import logging
import threading
from typing import Any, Dict, Optional

from optical_engine import OpticalMeasurementEngine, OpticalEngineError
from optical_engine.config import LANDMARK_STRATEGY

logger = logging.getLogger(__name__)


class MeasurementService:
    """Wraps one engine instance for the request/response boundary."""

    def __init__(self, engine: Optional[OpticalMeasurementEngine] = None, strategy: str = LANDMARK_STRATEGY):
        logger.info(f"[MeasurementService] Initializing engine (strategy={strategy})")
        self.engine = engine or OpticalMeasurementEngine(strategy=strategy)

    def process(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run one measurement request.

        Args:
            payload: {"image": <base64 or data URL>,
                      "calibrationHint": {"objectType", "realSizeMm", "pixelWidth"?}?,
                      "measurementType": str?}

        Returns:
            {"success": True, "measurement": {...}} or
            {"success": False, "error": {"kind", "message"}}
        """
        try:
            result = self.engine.measure(
                payload.get("image") or "",
                calibration_hint=payload.get("calibrationHint"),
                measurement_type=payload.get("measurementType"),
            )
        except OpticalEngineError as e:
            logger.warning(f"[MeasurementService] {e.kind}: {e.message}")
            return {"success": False, "error": e.to_dict()}

        return {"success": True, "measurement": result.to_dict()}

    def close(self):
        self.engine.close()


# Singleton instance
_measurement_service = None
_service_lock = threading.Lock()


def get_measurement_service() -> MeasurementService:
    global _measurement_service
    with _service_lock:
        if _measurement_service is None:
            _measurement_service = MeasurementService()
    return _measurement_service
