"""
Gate-then-segment.

detect_eye runs first; a rejected image never reaches the segmenter. Accepted
images are segmented and the result is combined with the gate confidence into
the response shape the front-ends expect.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

from detector import DetectionResult, EyeDetector
from raster import as_gray_array
from segmenter import IrisData, IrisSegmenter

logger = logging.getLogger(__name__)

# Error codes shared by the HTTP and CLI transports
MISSING_DATA = "MISSING_DATA"
INVALID_FORMAT = "INVALID_FORMAT"
DECODE_FAILED = "DECODE_FAILED"
NO_FILE = "NO_FILE"
NOT_IMAGE = "NOT_IMAGE"
READ_FAILED = "READ_FAILED"
NOT_AN_EYE = "NOT_AN_EYE"
PROCESSING_ERROR = "PROCESSING_ERROR"


def error_response(code, message):
    return {"errorCode": code, "message": message, "timestamp": int(time.time() * 1000)}


@dataclass(frozen=True)
class PipelineResult:
    detection: DetectionResult
    iris: Optional[IrisData] = None

    @property
    def accepted(self):
        return self.detection.is_eye and self.iris is not None

    def to_response(self):
        if not self.accepted:
            return error_response(
                NOT_AN_EYE,
                "Image does not appear to contain an eye. " + self.detection.reason,
            )
        return {**self.iris.to_dict(), "eyeConfidence": self.detection.confidence}


def process_image(image, detector=None, segmenter=None):
    """
    Run the gate on `image` and, only when it accepts, the segmenter.
    `segmenter` is any callable image -> IrisData; segmentation errors propagate.
    """
    detector = detector or EyeDetector()
    gray = as_gray_array(image)
    h, w = gray.shape
    logger.info("Processing image with dimensions: %dx%d", w, h)

    detection = detector.detect(gray)
    if not detection.is_eye:
        logger.info("Image rejected - not detected as eye: %s", detection.reason)
        return PipelineResult(detection)

    logger.info("Eye detected with confidence: %.2f", detection.confidence)
    segmenter = segmenter or IrisSegmenter()
    iris = segmenter(gray)
    return PipelineResult(detection, iris)
