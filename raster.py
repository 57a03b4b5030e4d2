"""
Grayscale raster + image decoding helpers.

Everything the eye gate reads is a single-channel uint8 image, row-major,
one luminance byte per pixel. This module owns the conversion from whatever
the caller has (encoded bytes, base64 strings, BGR frames) into that shape.
"""
import base64
import binascii
import logging
from dataclasses import dataclass

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class ImageDecodeError(ValueError):
    """Raised when bytes / base64 data cannot be turned into an image."""


@dataclass(frozen=True)
class GrayscaleRaster:
    """Single-channel luminance image. Immutable once built."""
    width: int
    height: int
    samples: bytes

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid raster size {self.width}x{self.height}")
        if not isinstance(self.samples, bytes):
            values = np.asarray(self.samples).ravel()
            if values.size and (values.dtype.kind not in "biu"
                                or values.min() < 0 or values.max() > 255):
                raise ValueError("Raster samples must be integers in 0..255")
            object.__setattr__(self, "samples", values.astype(np.uint8).tobytes())
        if len(self.samples) != self.width * self.height:
            raise ValueError(
                f"Raster {self.width}x{self.height} needs {self.width * self.height} "
                f"samples, got {len(self.samples)}"
            )

    @classmethod
    def from_array(cls, gray):
        gray = to_grayscale(gray)
        h, w = gray.shape
        return cls(width=w, height=h, samples=gray.tobytes())

    def as_array(self):
        """Read-only (height, width) uint8 view over the samples."""
        return np.frombuffer(self.samples, dtype=np.uint8).reshape(self.height, self.width)


def to_grayscale(image):
    """BGR / BGRA / gray ndarray -> 2-D uint8 gray array."""
    if not isinstance(image, np.ndarray):
        raise ValueError(f"Expected an image array, got {type(image).__name__}")
    if image.dtype != np.uint8:
        raise ValueError(f"Expected uint8 samples, got {image.dtype}")

    if image.ndim == 2:
        return image
    if image.ndim == 3 and image.shape[2] == 1:
        return image[:, :, 0]
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise ValueError(f"Unsupported image shape {image.shape}")


def as_gray_array(image):
    if isinstance(image, GrayscaleRaster):
        return image.as_array()
    return to_grayscale(image)


# ─── Decoding ───────────────────────────────────────────────────
def decode_image(file_bytes):
    arr = np.frombuffer(file_bytes, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size > 0 else None
    if img is None:
        raise ImageDecodeError("Could not decode image. Upload a valid PNG/JPG.")
    return img


def strip_data_url(data):
    """Drop a leading ``data:image/...;base64,`` prefix if present."""
    data = data.strip()
    if data.startswith("data:image"):
        parts = data.split(",", 1)
        if len(parts) < 2 or not parts[1]:
            raise ImageDecodeError("Invalid base64 image format")
        logger.debug("Stripped data URL prefix")
        return parts[1]
    return data


def decode_base64_image(data):
    # Line-wrapped input (stdin, e-mail style base64) is joined first.
    payload = "".join(strip_data_url(data).split())
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 data: {e}") from e
    return decode_image(raw)
