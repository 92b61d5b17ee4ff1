"""
Tests for the measurement service and the HTTP endpoint.
"""

import base64

import numpy as np
import pytest
from fastapi.testclient import TestClient

import main
import measurement_service
from measurement_service import MeasurementService
from optical_engine import InitializationError, OpticalMeasurementEngine

from conftest import FakeLandmarkProvider, encode_png


@pytest.fixture
def image_b64() -> str:
    image = np.full((520, 640, 3), 150, dtype=np.uint8)
    return base64.b64encode(encode_png(image)).decode("ascii")


@pytest.fixture
def service(fake_provider) -> MeasurementService:
    return MeasurementService(engine=OpticalMeasurementEngine(landmark_provider=fake_provider))


@pytest.fixture
def client(service, monkeypatch) -> TestClient:
    monkeypatch.setattr(main, "get_measurement_service", lambda: service)
    return TestClient(main.app)


class TestMeasurementService:

    def test_success(self, service, image_b64):
        response = service.process({
            "image": image_b64,
            "calibrationHint": {"objectType": "credit_card", "realSizeMm": 85.6, "pixelWidth": 324},
            "measurementType": "pd_measurement",
        })
        assert response["success"] is True
        measurement = response["measurement"]
        assert measurement["measurement_type"] == "pd"
        assert measurement["pupillary_distance"] == round(120 * 85.6 / 324, 2)
        assert measurement["calibration_method"] == "reference"

    def test_missing_image(self, service):
        response = service.process({})
        assert response == {"success": False, "error": {"kind": "input_error", "message": "Image payload is empty"}}

    def test_detection_error(self, failing_provider, image_b64):
        service = MeasurementService(engine=OpticalMeasurementEngine(landmark_provider=failing_provider))
        response = service.process({"image": image_b64})
        assert response["success"] is False
        assert response["error"]["kind"] == "detection_error"

    def test_unexpected_errors_propagate(self, image_b64):
        class BrokenProvider(FakeLandmarkProvider):
            def detect(self, image):
                raise RuntimeError("boom")

        service = MeasurementService(engine=OpticalMeasurementEngine(landmark_provider=BrokenProvider(None)))
        with pytest.raises(RuntimeError):
            service.process({"image": image_b64})

    def test_singleton(self, monkeypatch, fake_provider):
        monkeypatch.setattr(measurement_service, "_measurement_service", None)
        monkeypatch.setattr(
            measurement_service,
            "MeasurementService",
            lambda: MeasurementService(engine=OpticalMeasurementEngine(landmark_provider=fake_provider)),
        )
        assert measurement_service.get_measurement_service() is measurement_service.get_measurement_service()


class TestApi:

    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_process_measurement(self, client, image_b64):
        response = client.post("/api/process-measurement", json={
            "image": image_b64,
            "calibrationHint": {"objectType": "credit_card", "realSizeMm": 85.6, "pixelWidth": 324},
            "measurementType": "monocular_pd",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["measurement"]["emphasized_fields"] == ["monocular_pd_right", "monocular_pd_left"]

    def test_bad_image_is_400(self, client):
        response = client.post("/api/process-measurement", json={"image": "not an image"})
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "input_error"

    def test_unknown_type_is_400(self, client, image_b64):
        response = client.post("/api/process-measurement", json={"image": image_b64, "measurementType": "x"})
        assert response.status_code == 400

    def test_missing_reference_is_422(self, client, image_b64):
        response = client.post("/api/process-measurement", json={
            "image": image_b64,
            "calibrationHint": {"objectType": "credit_card", "realSizeMm": 85.6},
        })
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "calibration_error"

    def test_no_face_is_422(self, failing_provider, monkeypatch, image_b64):
        service = MeasurementService(engine=OpticalMeasurementEngine(landmark_provider=failing_provider))
        monkeypatch.setattr(main, "get_measurement_service", lambda: service)
        response = TestClient(main.app).post("/api/process-measurement", json={"image": image_b64})
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "detection_error"

    def test_model_unavailable_is_503(self, monkeypatch, image_b64):
        def unavailable():
            raise InitializationError("Face landmarker model not found")

        monkeypatch.setattr(main, "get_measurement_service", unavailable)
        response = TestClient(main.app).post("/api/process-measurement", json={"image": image_b64})
        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "initialization_error"

    def test_request_validation(self, client):
        response = client.post("/api/process-measurement", json={"measurementType": "pd"})
        assert response.status_code == 422

    @pytest.mark.parametrize("hint", [
        '{"objectType": "credit_card", "realSizeMm": 85.6, "pixelWidth": Infinity}',
        '{"objectType": "credit_card", "realSizeMm": Infinity, "pixelWidth": 324}',
        '{"objectType": "credit_card", "realSizeMm": NaN}',
    ])
    def test_non_finite_hint_is_400(self, client, image_b64, hint):
        body = '{"image": "%s", "calibrationHint": %s}' % (image_b64, hint)
        response = client.post(
            "/api/process-measurement",
            content=body,
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "input_error"
