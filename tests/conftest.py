"""Synthetic rasters shared by the test modules."""

import numpy as np
import pytest


def striped(size, low, high):
    """Vertical stripes two pixels wide: every interior pixel sees |high - low| horizontally."""
    xx = np.arange(size)[None, :].repeat(size, axis=0)
    return np.where((xx // 2) % 2 == 0, low, high).astype(np.uint8)


def disk_mask(size, radius):
    yy, xx = np.mgrid[:size, :size]
    c = size // 2
    return (xx - c) ** 2 + (yy - c) ** 2 <= radius ** 2


@pytest.fixture
def dark_disk_on_texture():
    """120x120: radius-20 dark disk (20) on a 90/200 striped background."""
    gray = striped(120, 90, 200)
    gray[disk_mask(120, 20)] = 20
    return gray


@pytest.fixture
def dark_disk_on_flat():
    """120x120: radius-20 dark disk (20) on a flat bright (220) background."""
    gray = np.full((120, 120), 220, dtype=np.uint8)
    gray[disk_mask(120, 20)] = 20
    return gray


@pytest.fixture
def synthetic_eye():
    """400x400 close-up: pupil r=50 (20), iris r=110 (110), striped sclera (180/255)."""
    gray = striped(400, 180, 255)
    gray[disk_mask(400, 110)] = 110
    gray[disk_mask(400, 50)] = 20
    return gray
