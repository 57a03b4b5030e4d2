"""HTTP transport tests (FastAPI TestClient)."""

import base64

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from api import create_app
from segmenter import IrisData, SegmentationError

FIXED = IrisData(60, 60, 20, 61, 59, 45, 1.0)


def png_bytes(gray):
    ok, buf = cv2.imencode(".png", gray)
    assert ok
    return buf.tobytes()


@pytest.fixture
def client():
    return TestClient(create_app(segmenter=lambda image: FIXED))


@pytest.fixture
def eye_png(dark_disk_on_texture):
    return png_bytes(dark_disk_on_texture)


@pytest.fixture
def white_png():
    return png_bytes(np.full((100, 100), 255, dtype=np.uint8))


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_process_base64_accepts_eye(client, eye_png):
    data = "data:image/png;base64," + base64.b64encode(eye_png).decode()
    resp = client.post("/api/process-base64", json={"imageData": data})
    assert resp.status_code == 200
    body = resp.json()
    assert body["irisRadius"] == 45
    assert body["eyeConfidence"] == pytest.approx(1.0)


def test_process_base64_rejects_non_eye(client, white_png):
    resp = client.post("/api/process-base64",
                       json={"imageData": base64.b64encode(white_png).decode()})
    assert resp.status_code == 200
    assert resp.json()["errorCode"] == "NOT_AN_EYE"


@pytest.mark.parametrize("payload,code", [
    ({}, "MISSING_DATA"),
    ({"imageData": "   "}, "MISSING_DATA"),
    ({"imageData": "data:image/png;base64"}, "INVALID_FORMAT"),
    ({"imageData": "%%%"}, "DECODE_FAILED"),
    ({"imageData": base64.b64encode(b"plain text").decode()}, "DECODE_FAILED"),
])
def test_process_base64_bad_input(client, payload, code):
    resp = client.post("/api/process-base64", json=payload)
    assert resp.status_code == 400
    assert resp.json()["errorCode"] == code


def test_process_base64_segmenter_failure(eye_png):
    def failing(image):
        raise SegmentationError("No pupil candidate found")

    client = TestClient(create_app(segmenter=failing))
    resp = client.post("/api/process-base64",
                       json={"imageData": base64.b64encode(eye_png).decode()})
    assert resp.status_code == 500
    body = resp.json()
    assert body["errorCode"] == "PROCESSING_ERROR"
    assert "No pupil candidate found" in body["message"]


def test_process_file_accepts_eye(client, eye_png):
    resp = client.post("/api/process-file", files={"image": ("eye.png", eye_png, "image/png")})
    assert resp.status_code == 200
    assert resp.json()["pupilCenterX"] == 60


@pytest.mark.parametrize("upload,code", [
    (("empty.png", b"", "image/png"), "NO_FILE"),
    (("notes.txt", b"hello", "text/plain"), "NOT_IMAGE"),
    (("broken.png", b"hello", "image/png"), "READ_FAILED"),
])
def test_process_file_bad_upload(client, upload, code):
    resp = client.post("/api/process-file", files={"image": upload})
    assert resp.status_code == 400
    assert resp.json()["errorCode"] == code


def test_detect_only(client, white_png):
    resp = client.post("/api/detect", files={"image": ("white.png", white_png, "image/png")})
    assert resp.status_code == 200
    body = resp.json()
    assert body["isEye"] is False
    assert body["confidence"] == 0.0
    assert body["signals"]["passedTests"] == 0


def test_detector_config_override(white_png):
    client = TestClient(create_app(segmenter=lambda image: FIXED,
                                   detector_config={"min_passed_tests": 0}))
    resp = client.post("/api/process-file", files={"image": ("white.png", white_png, "image/png")})
    assert resp.json()["eyeConfidence"] == 0.0


def test_cors_allows_dev_frontend(client):
    resp = client.options(
        "/api/process-base64",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
