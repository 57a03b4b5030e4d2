"""
Eye Gate — heuristic "is this an eye?" check.
Pure heuristics over a grayscale raster. No models, no state between calls.

Four independent votes:
  1. Circular structures (radial gradient sampling around the centre)
  2. Percentile contrast (pupil/iris vs sclera/skin)
  3. Edge density (lashes, iris texture)
  4. Dark region (flood-filled pupil-sized blob near the centre)

The weighted votes decide accept/reject; any internal failure resolves to a
rejection instead of an exception.
"""
import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from raster import as_gray_array

logger = logging.getLogger(__name__)

# ─── Tunable Hyperparameters ────────────────────────────────────
DEFAULT_CONFIG = {
    # Pass thresholds
    "min_circular_score": 0.3,
    "min_contrast_ratio": 2.0,
    "min_edge_density": 0.15,
    "min_dark_region_size": 100,   # pixels

    # Pixel classification
    "dark_pixel_threshold": 50,    # luminance below this = dark
    "edge_gradient_threshold": 30,  # gradient above this = edge
    "histogram_percentile": 0.10,  # dark / bright population share

    # Circular sampling
    "circle_radius_step": 5,
    "circle_angle_step": 10,       # degrees
    "circle_min_max_radius": 5,    # below this the image is too small to sample
    "circle_normalizer": 100.0,

    # Vote weights
    "circular_weight": 0.3,
    "contrast_weight": 0.3,
    "edge_weight": 0.2,
    "dark_region_weight": 0.2,
    "min_passed_tests": 3,
}


# ─── Data Classes ───────────────────────────────────────────────
@dataclass(frozen=True)
class EyeSignals:
    """Raw analyzer outputs for one raster."""
    circular_score: float
    contrast_ratio: float
    edge_density: float
    dark_region_size: int
    has_dark_region: bool
    passed_tests: int = 0

    def to_dict(self):
        return {
            "circularScore": self.circular_score,
            "contrastRatio": self.contrast_ratio,
            "edgeDensity": self.edge_density,
            "darkRegionSize": self.dark_region_size,
            "hasDarkRegion": self.has_dark_region,
            "passedTests": self.passed_tests,
        }


@dataclass(frozen=True)
class DetectionResult:
    is_eye: bool
    confidence: float
    reason: str
    signals: Optional[EyeSignals] = None  # None when detection errored

    def to_dict(self):
        out = {"isEye": self.is_eye, "confidence": self.confidence, "reason": self.reason}
        if self.signals is not None:
            out["signals"] = self.signals.to_dict()
        return out


# ─── Gradient Primitive ─────────────────────────────────────────
def gradient_magnitude(gray, x, y):
    """Central-difference gradient at an interior pixel (1 <= x < w-1, 1 <= y < h-1)."""
    dx = int(gray[y, x + 1]) - int(gray[y, x - 1])
    dy = int(gray[y + 1, x]) - int(gray[y - 1, x])
    return float(np.sqrt(dx * dx + dy * dy))


def gradient_map(gray):
    """Gradient magnitude for every interior pixel, shape (h-2, w-2)."""
    h, w = gray.shape
    if h < 3 or w < 3:
        return np.zeros((max(h - 2, 0), max(w - 2, 0)), dtype=np.float64)
    g = gray.astype(np.int32)
    dx = g[1:-1, 2:] - g[1:-1, :-2]
    dy = g[2:, 1:-1] - g[:-2, 1:-1]
    return np.sqrt(dx * dx + dy * dy)


# ─── Analyzers ──────────────────────────────────────────────────
def circular_score(gray, radius_step=5, angle_step=10, min_max_radius=5, normalizer=100.0):
    """
    Simplified circular Hough: average gradient along rings centred on the
    image, best ring wins. Returns a score in [0, 1].
    """
    h, w = gray.shape
    cx, cy = w // 2, h // 2
    max_r = min(w, h) // 3
    if max_r < min_max_radius:
        return 0.0

    angles = np.radians(np.arange(0, 360, angle_step))
    cos_a = np.cos(angles)
    sin_a = np.sin(angles)

    max_avg = 0.0
    for r in range(max_r // 4, max_r, radius_step):
        total = 0.0
        points = 0
        for ca, sa in zip(cos_a, sin_a):
            x = int(cx + r * ca)
            y = int(cy + r * sa)
            if 1 <= x < w - 1 and 1 <= y < h - 1:
                total += gradient_magnitude(gray, x, y)
                points += 1
        if points > 0:
            max_avg = max(max_avg, total / points)

    return min(max_avg / normalizer, 1.0)


def contrast_ratio(gray, percentile=0.10):
    """Bright-percentile luminance over dark-percentile luminance."""
    total = gray.size
    if total == 0:
        return 0.0
    hist = np.bincount(gray.ravel(), minlength=256)
    need = total * percentile

    # First bin (from the dark end / bright end) where the running count reaches `need`
    dark_value = int(np.argmax(np.cumsum(hist) >= need))
    bright_value = 255 - int(np.argmax(np.cumsum(hist[::-1]) >= need))

    dark_value = max(dark_value, 1)  # avoid division by zero
    return bright_value / dark_value


def edge_density(gray, gradient_threshold=30):
    """Fraction of interior pixels whose gradient exceeds the threshold."""
    grad = gradient_map(gray)
    if grad.size == 0:
        return 0.0
    return float(np.count_nonzero(grad > gradient_threshold)) / grad.size


def _dark_runs(dark):
    """Horizontal runs of dark pixels as parallel lists (row, start, end), row-major."""
    h, w = dark.shape
    padded = np.zeros((h, w + 2), dtype=np.int8)
    padded[:, 1:-1] = dark
    edges = np.diff(padded, axis=1)
    rows, starts = np.nonzero(edges == 1)
    _, ends = np.nonzero(edges == -1)   # exclusive
    return rows.tolist(), starts.tolist(), ends.tolist()


def _overlapping(starts, ends, lo, hi, x0, x1):
    """Index range of runs in [lo, hi) that share a column with [x0, x1)."""
    return bisect_right(ends, x0, lo, hi), bisect_left(starts, x1, lo, hi)


def _flood_fill_count(seed, rows, starts, ends, row_first, visited):
    """Pixel count of the 4-connected dark component containing run `seed`."""
    stack = [seed]
    visited[seed] = 1
    count = 0
    while stack:
        run = stack.pop()
        y, x0, x1 = rows[run], starts[run], ends[run]
        count += x1 - x0
        for ny in (y - 1, y + 1):
            if 0 <= ny < len(row_first) - 1:
                first, last = _overlapping(starts, ends, row_first[ny], row_first[ny + 1], x0, x1)
                for other in range(first, last):
                    if not visited[other]:
                        visited[other] = 1
                        stack.append(other)
    return count


def largest_dark_region(gray, dark_threshold=50):
    """
    Largest 4-connected region of pixels below `dark_threshold` that has a
    seed inside the central half of the image. The fill itself may leave the
    central window.

    The fill walks horizontal runs rather than single pixels, so a large
    uniform blob costs one stack entry per row.
    """
    h, w = gray.shape
    rows, starts, ends = _dark_runs(gray < dark_threshold)
    row_first = np.searchsorted(np.asarray(rows, dtype=np.intp), np.arange(h + 1)).tolist()
    visited = bytearray(len(rows))  # private to this call

    largest = 0
    for y in range(h // 4, 3 * h // 4):
        first, last = _overlapping(starts, ends, row_first[y], row_first[y + 1], w // 4, 3 * w // 4)
        for run in range(first, last):
            if not visited[run]:
                size = _flood_fill_count(run, rows, starts, ends, row_first, visited)
                largest = max(largest, size)
    return largest


# ─── Decision ───────────────────────────────────────────────────
class EyeDetector:
    """Weighted vote over the four analyzers. Holds only its config."""

    def __init__(self, config=None):
        self.config = {**DEFAULT_CONFIG, **(config or {})}

    def analyze(self, gray):
        """Run all four analyzers on a 2-D uint8 array."""
        cfg = self.config
        dark_size = largest_dark_region(gray, cfg["dark_pixel_threshold"])
        return EyeSignals(
            circular_score=circular_score(
                gray,
                radius_step=cfg["circle_radius_step"],
                angle_step=cfg["circle_angle_step"],
                min_max_radius=cfg["circle_min_max_radius"],
                normalizer=cfg["circle_normalizer"],
            ),
            contrast_ratio=contrast_ratio(gray, cfg["histogram_percentile"]),
            edge_density=edge_density(gray, cfg["edge_gradient_threshold"]),
            dark_region_size=dark_size,
            has_dark_region=dark_size >= cfg["min_dark_region_size"],
        )

    def detect(self, image):
        """GrayscaleRaster / ndarray -> DetectionResult. Never raises."""
        try:
            gray = as_gray_array(image)
            signals = self.analyze(gray)
            return self._decide(signals)
        except Exception as e:
            return _failure(e)

    def _decide(self, signals):
        cfg = self.config
        votes = [
            (signals.circular_score >= cfg["min_circular_score"], cfg["circular_weight"],
             "insufficient circular structures"),
            (signals.contrast_ratio >= cfg["min_contrast_ratio"], cfg["contrast_weight"],
             "low contrast"),
            (signals.edge_density >= cfg["min_edge_density"], cfg["edge_weight"],
             "low edge density"),
            (signals.has_dark_region, cfg["dark_region_weight"],
             "no dark pupil region found"),
        ]

        confidence = 0.0
        passed = 0
        failed = []
        for ok, weight, failure in votes:
            if ok:
                confidence += weight
                passed += 1
            else:
                failed.append(failure)
        # Weights are decimal literals; rounding keeps the sums exact (0.6 + 0.2 == 0.8)
        confidence = round(confidence, 6)

        is_eye = passed >= cfg["min_passed_tests"]
        if is_eye:
            reason = (
                f"Eye detected with high confidence. "
                f"Circular structures: {signals.circular_score:.2f}, "
                f"Contrast ratio: {signals.contrast_ratio:.2f}, "
                f"Edge density: {signals.edge_density:.2f}, "
                f"Dark region: {'Yes' if signals.has_dark_region else 'No'}"
            )
        else:
            reason = "Not detected as eye image: " + ", ".join(failed)

        signals = replace(signals, passed_tests=passed)
        logger.debug("Eye gate: passed=%d confidence=%.2f", passed, confidence)
        return DetectionResult(is_eye, confidence, reason, signals)


def _failure(error):
    logger.warning("Eye detection failed: %s", error)
    return DetectionResult(False, 0.0, f"Error during eye detection: {error}")


def detect_eye(image, config=None):
    """Module-level entry point: one-shot detection with optional overrides. Never raises."""
    try:
        detector = EyeDetector(config)
    except Exception as e:
        return _failure(e)
    return detector.detect(image)
