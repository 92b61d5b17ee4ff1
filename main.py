"""
FastAPI Backend for the Optical Measurement Engine.
Provides the measurement endpoint used by the clinic web client.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from measurement_service import get_measurement_service
from optical_engine import InitializationError, __version__

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Optical Measurement API",
    description="API for optical fitting measurements from a facial photograph",
    version=__version__
)

# Add CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    "input_error": 400,
    "detection_error": 422,
    "calibration_error": 422,
    "initialization_error": 503,
}


class CalibrationHint(BaseModel):
    """Known-size reference object in the photograph."""
    objectType: str
    realSizeMm: float
    pixelWidth: Optional[float] = None


class MeasurementRequest(BaseModel):
    """Request with base64 encoded image."""
    image: str
    calibrationHint: Optional[CalibrationHint] = None
    measurementType: Optional[str] = None


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Optical Measurement API", "version": __version__}


@app.post("/api/process-measurement")
def process_measurement(request: MeasurementRequest):
    """Measure one facial image."""
    payload = {
        "image": request.image,
        "measurementType": request.measurementType,
    }
    if request.calibrationHint is not None:
        payload["calibrationHint"] = {
            "objectType": request.calibrationHint.objectType,
            "realSizeMm": request.calibrationHint.realSizeMm,
            "pixelWidth": request.calibrationHint.pixelWidth,
        }

    try:
        service = get_measurement_service()
    except InitializationError as e:
        logger.error(f"[API] Engine unavailable: {e.message}")
        return JSONResponse(status_code=503, content={"success": False, "error": e.to_dict()})

    result = service.process(payload)
    if result["success"]:
        return JSONResponse(content=result)

    status = ERROR_STATUS.get(result["error"]["kind"], 500)
    return JSONResponse(status_code=status, content=result)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Starting Optical Measurement API on http://0.0.0.0:8000 (docs at /docs)")

    uvicorn.run(app, host="0.0.0.0", port=8000)
