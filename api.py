from __future__ import annotations

import logging
import os

from fastapi import FastAPI, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from detector import EyeDetector
from pipeline import (
    DECODE_FAILED,
    INVALID_FORMAT,
    MISSING_DATA,
    NO_FILE,
    NOT_IMAGE,
    PROCESSING_ERROR,
    READ_FAILED,
    error_response,
    process_image,
)
from raster import ImageDecodeError, decode_base64_image, decode_image, strip_data_url
from segmenter import IrisSegmenter

logger = logging.getLogger(__name__)


class ImageRequest(BaseModel):
    image_data: str | None = Field(default=None, alias="imageData")


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


def create_app(segmenter=None, detector_config: dict | None = None) -> FastAPI:
    app = FastAPI(title="Iris Segmentation Service", version="0.1.0")
    detector = EyeDetector(detector_config)
    segmenter = segmenter or IrisSegmenter()

    # React dev server + Electron shell; FRONTEND_URL adds a deployed front-end.
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "file://",
        os.getenv("FRONTEND_URL", ""),
    ]
    allowed_origins = [origin for origin in allowed_origins if origin]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )

    def run(img) -> JSONResponse:
        try:
            result = process_image(img, detector=detector, segmenter=segmenter)
        except Exception as e:
            logger.exception("Error processing image")
            return _error(500, PROCESSING_ERROR, f"Error processing image: {e}")
        return JSONResponse(status_code=200, content=result.to_response())

    @app.get("/api/health")
    def health() -> dict:
        return {"ok": True, "message": "Iris Segmentation Server is running!"}

    @app.post("/api/process-base64")
    def process_base64(request: ImageRequest) -> JSONResponse:
        data = request.image_data
        if data is None or not data.strip():
            return _error(400, MISSING_DATA, "Image data is required")
        try:
            strip_data_url(data)
        except ImageDecodeError as e:
            return _error(400, INVALID_FORMAT, str(e))
        try:
            img = decode_base64_image(data)
        except ImageDecodeError as e:
            logger.info("Failed to decode base64 image: %s", e)
            return _error(400, DECODE_FAILED, "Failed to decode image from base64 data")

        logger.info("Received base64 image %dx%d", img.shape[1], img.shape[0])
        return run(img)

    async def read_upload(file: UploadFile):
        """Returns (image, None) or (None, error response)."""
        body = await file.read()
        if not body:
            return None, _error(400, NO_FILE, "No file uploaded")
        content_type = file.content_type
        if content_type is None or not content_type.startswith("image/"):
            return None, _error(400, NOT_IMAGE, "File must be an image")
        logger.info("Received file upload: %s (%d bytes, %s)", file.filename, len(body), content_type)
        try:
            return decode_image(body), None
        except ImageDecodeError:
            return None, _error(400, READ_FAILED, "Failed to read image file")

    @app.post("/api/process-file")
    async def process_file(image: UploadFile = File(...)) -> JSONResponse:
        img, err = await read_upload(image)
        if err is not None:
            return err
        return run(img)

    @app.post("/api/detect")
    async def detect(image: UploadFile = File(...)) -> JSONResponse:
        """
        Eye gate only (for UI feedback before a full segmentation request).
        """
        img, err = await read_upload(image)
        if err is not None:
            return err
        return JSONResponse(status_code=200, content=detector.detect(img).to_dict())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
