"""
Eye Gate Benchmark
Runs the heuristic eye gate over two labelled folders and reports how well the
fixed thresholds separate them.

Metrics:
  1. Accept Rate: % of eye images the gate lets through
  2. Reject Rate: % of non-eye images the gate stops
  3. Per-heuristic pass rate on each folder (which vote is doing the work)

Run: python benchmark.py EYES_DIR NON_EYES_DIR
"""
import logging
import sys
import time
from pathlib import Path

import cv2
import numpy as np

from detector import EyeDetector

logger = logging.getLogger("benchmark")

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff"}
HEURISTICS = ("circular", "contrast", "edges", "dark_region")


class BenchmarkMetrics:
    def __init__(self, config=None):
        self.config = EyeDetector(config).config
        self.accepted = {True: 0, False: 0}
        self.totals = {True: 0, False: 0}
        self.passes = {True: dict.fromkeys(HEURISTICS, 0), False: dict.fromkeys(HEURISTICS, 0)}
        self.latencies = []

    def update(self, is_eye_label, result, elapsed):
        self.totals[is_eye_label] += 1
        self.latencies.append(elapsed)
        if result.is_eye:
            self.accepted[is_eye_label] += 1

        sig = result.signals
        if sig is None:
            return
        cfg = self.config
        votes = {
            "circular": sig.circular_score >= cfg["min_circular_score"],
            "contrast": sig.contrast_ratio >= cfg["min_contrast_ratio"],
            "edges": sig.edge_density >= cfg["min_edge_density"],
            "dark_region": sig.has_dark_region,
        }
        for name, ok in votes.items():
            self.passes[is_eye_label][name] += int(ok)

    @property
    def accept_rate(self):
        n = self.totals[True]
        return self.accepted[True] / n * 100.0 if n else 0.0

    @property
    def reject_rate(self):
        n = self.totals[False]
        return (n - self.accepted[False]) / n * 100.0 if n else 0.0

    def pass_rate(self, is_eye_label, name):
        n = self.totals[is_eye_label]
        return self.passes[is_eye_label][name] / n * 100.0 if n else 0.0

    @property
    def mean_latency_ms(self):
        return float(np.mean(self.latencies)) * 1000.0 if self.latencies else 0.0


def iter_images(folder):
    for path in sorted(Path(folder).rglob("*")):
        if path.suffix.lower() in IMAGE_SUFFIXES:
            yield path


def run(eyes_dir, non_eyes_dir, config=None):
    detector = EyeDetector(config)
    metrics = BenchmarkMetrics(config)

    for label, folder in ((True, eyes_dir), (False, non_eyes_dir)):
        for path in iter_images(folder):
            img = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if img is None:
                logger.warning("Skipping unreadable image %s", path)
                continue
            t0 = time.perf_counter()
            result = detector.detect(img)
            metrics.update(label, result, time.perf_counter() - t0)
            logger.debug("%s: %s", path.name, result.reason)
    return metrics


def report(metrics):
    lines = [
        "=" * 40,
        "  BENCHMARK RESULTS",
        "=" * 40,
        f"  Eye images:     {metrics.totals[True]}",
        f"  Non-eye images: {metrics.totals[False]}",
        f"  Accept Rate:    {metrics.accept_rate:.1f}%",
        f"  Reject Rate:    {metrics.reject_rate:.1f}%",
        f"  Mean latency:   {metrics.mean_latency_ms:.1f} ms",
        "=" * 40,
        "  Pass rate        eyes   non-eyes",
    ]
    for name in HEURISTICS:
        lines.append(f"    {name:<13} {metrics.pass_rate(True, name):5.1f}%  "
                     f"{metrics.pass_rate(False, name):5.1f}%")
    lines.append("=" * 40)
    return "\n".join(lines)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)

    print("=== Eye Gate Benchmark ===")
    metrics = run(sys.argv[1], sys.argv[2])
    print(report(metrics))


if __name__ == "__main__":
    main()
