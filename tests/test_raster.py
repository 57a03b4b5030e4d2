"""Tests for raster construction, conversion and decoding."""

import base64

import cv2
import numpy as np
import pytest

from raster import (
    GrayscaleRaster,
    ImageDecodeError,
    as_gray_array,
    decode_base64_image,
    decode_image,
    strip_data_url,
    to_grayscale,
)


def png_bytes(img):
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def test_raster_roundtrip_layout():
    gray = np.arange(12, dtype=np.uint8).reshape(3, 4)
    raster = GrayscaleRaster.from_array(gray)
    assert (raster.width, raster.height) == (4, 3)
    assert raster.samples[4] == 4  # row-major: (x=0, y=1)
    np.testing.assert_array_equal(raster.as_array(), gray)


def test_raster_view_is_read_only():
    raster = GrayscaleRaster(2, 2, bytes([1, 2, 3, 4]))
    with pytest.raises(ValueError):
        raster.as_array()[0, 0] = 9


@pytest.mark.parametrize("width,height,samples", [
    (2, 2, b"\x00\x00\x00"),
    (-1, 2, b""),
    (3, 1, b"\x00" * 4),
])
def test_raster_validation(width, height, samples):
    with pytest.raises(ValueError):
        GrayscaleRaster(width, height, samples)


def test_to_grayscale_bgr_and_bgra():
    bgr = np.zeros((5, 6, 3), dtype=np.uint8)
    bgr[..., 2] = 255  # pure red
    gray = to_grayscale(bgr)
    assert gray.shape == (5, 6)
    assert int(gray[0, 0]) == 76  # 0.299 * 255

    bgra = np.dstack([bgr, np.full((5, 6), 255, dtype=np.uint8)])
    np.testing.assert_array_equal(to_grayscale(bgra), gray)


def test_to_grayscale_passthrough_and_single_channel():
    gray = np.full((4, 4), 9, dtype=np.uint8)
    assert to_grayscale(gray) is gray
    np.testing.assert_array_equal(to_grayscale(gray[..., None]), gray)


@pytest.mark.parametrize("bad", [
    np.zeros((4, 4), dtype=np.float32),
    np.zeros((4, 4, 2), dtype=np.uint8),
    np.zeros((2, 2, 2, 2), dtype=np.uint8),
    [[0, 1], [2, 3]],
])
def test_to_grayscale_rejects(bad):
    with pytest.raises(ValueError):
        to_grayscale(bad)


def test_as_gray_array_accepts_raster():
    raster = GrayscaleRaster(2, 1, b"\x05\x06")
    np.testing.assert_array_equal(as_gray_array(raster), [[5, 6]])


def test_decode_image_png():
    img = np.full((8, 10, 3), 128, dtype=np.uint8)
    decoded = decode_image(png_bytes(img))
    assert decoded.shape == (8, 10, 3)


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_decode_image_rejects_garbage(data):
    with pytest.raises(ImageDecodeError):
        decode_image(data)


def test_strip_data_url():
    assert strip_data_url("data:image/png;base64,QUJD") == "QUJD"
    assert strip_data_url("  QUJD\n") == "QUJD"
    with pytest.raises(ImageDecodeError, match="Invalid base64 image format"):
        strip_data_url("data:image/png;base64")


def test_decode_base64_image_with_prefix_and_wrapping():
    img = np.full((6, 6, 3), 40, dtype=np.uint8)
    b64 = base64.b64encode(png_bytes(img)).decode()
    wrapped = "\n".join(b64[i:i + 16] for i in range(0, len(b64), 16))
    decoded = decode_base64_image("data:image/png;base64," + wrapped)
    assert decoded.shape == (6, 6, 3)


def test_decode_base64_image_invalid():
    with pytest.raises(ImageDecodeError, match="Invalid base64 data"):
        decode_base64_image("!!!not-base64!!!")


@pytest.mark.parametrize("samples", [
    [0] * 10000,
    bytearray(10000),
    np.zeros(10000, dtype=np.uint8),
    np.zeros((100, 100), dtype=np.int64),
])
def test_raster_accepts_any_uint8_sequence(samples):
    raster = GrayscaleRaster(100, 100, samples)
    assert isinstance(raster.samples, bytes)
    assert raster.samples == bytes(10000)


@pytest.mark.parametrize("samples", [[256, 0], [-1, 0], np.array([0.5, 1.0])])
def test_raster_rejects_out_of_range_samples(samples):
    with pytest.raises(ValueError):
        GrayscaleRaster(2, 1, samples)
