"""
Pupil / Iris Segmenter — Pure CV, No AI
Default downstream collaborator for the eye gate: takes a still image that
already passed the gate and returns pupil + iris circles.

Pipeline:
  1. Pupil detection (dark blob + relative area filter + ring contrast)
  2. Iris circle fitting (radial ray casting + RANSAC + least squares)
  3. Fallback iris (concentric with the pupil) when the fit is weak
"""
import logging
from dataclasses import dataclass

import cv2
import numpy as np

from raster import as_gray_array

logger = logging.getLogger(__name__)

# ─── Configuration ──────────────────────────────────────────────
DEFAULT_SEGMENTER_CONFIG = {
    # Processing
    "processing_width": 400,
    "use_clahe": True,

    # Pupil detection
    "dark_percentile": 3,
    "min_area_fraction": 0.0005,     # Smaller blobs are noise / lashes
    "max_area_fraction": 0.25,       # Close-up eye: pupil never fills a quarter of the frame
    "min_circularity": 0.15,
    "min_contrast": 20,
    "contrast_ring": 2.5,
    "center_weight": 0.3,
    "gradient_weight": 0.2,

    # Iris fitting
    "iris_num_rays": 36,             # Rays cast outward from pupil
    "iris_start_ratio": 1.2,         # Rays start this × pupil radius out (skips the pupil edge)
    "iris_max_radius_fraction": 0.5,  # Of the shorter image side
    "iris_gradient_min": 8,          # Min gradient to count as iris-sclera boundary
    "iris_ransac_iters": 50,
    "iris_ransac_thresh": 3.0,       # Inlier distance threshold (px)
    "iris_min_inlier_ratio": 0.35,   # Min fraction of rays that must agree
    "iris_fallback_ratio": 2.5,      # Iris radius = this × pupil radius when fitting fails
    "ransac_seed": 0,
}


class SegmentationError(RuntimeError):
    """No usable pupil in the image."""


@dataclass(frozen=True)
class IrisData:
    """Pupil + iris circles in original image coordinates."""
    pupil_center_x: int
    pupil_center_y: int
    pupil_radius: int
    iris_center_x: int
    iris_center_y: int
    iris_radius: int
    iris_confidence: float = 0.0  # RANSAC inlier ratio, 0 on fallback

    def to_dict(self):
        return {
            "pupilCenterX": self.pupil_center_x,
            "pupilCenterY": self.pupil_center_y,
            "pupilRadius": self.pupil_radius,
            "irisCenterX": self.iris_center_x,
            "irisCenterY": self.iris_center_y,
            "irisRadius": self.iris_radius,
        }


class IrisSegmenter:
    """
    Single-image segmenter: finds the pupil, then fits the iris circle around it.
    Callable, so it can be handed to the pipeline directly.
    """

    def __init__(self, config=None):
        self.config = {**DEFAULT_SEGMENTER_CONFIG, **(config or {})}
        self.proc_w = self.config["processing_width"]
        self.clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(4, 4))

    def __call__(self, image):
        return self.segment(image)

    # ═══════════════════════════════════════════════════════════
    # Stage 1: Pupil Detection
    # ═══════════════════════════════════════════════════════════
    def _find_pupil_candidates(self, gray):
        """Find dark blob candidates that might be pupils."""
        cfg = self.config
        blurred = cv2.GaussianBlur(gray, (9, 9), 0)
        lim = np.percentile(blurred, cfg["dark_percentile"])

        _, thresh = cv2.threshold(blurred, lim, 255, cv2.THRESH_BINARY_INV)
        kernel = np.ones((3, 3), np.uint8)
        thresh = cv2.morphologyEx(thresh, cv2.MORPH_OPEN, kernel)

        contours, _ = cv2.findContours(thresh, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        h, w = gray.shape
        min_area = cfg["min_area_fraction"] * h * w
        max_area = cfg["max_area_fraction"] * h * w

        candidates = []
        for cnt in contours:
            area = cv2.contourArea(cnt)
            if area < min_area or area > max_area:
                continue
            perimeter = cv2.arcLength(cnt, True)
            if perimeter == 0:
                continue
            circularity = 4 * np.pi * (area / (perimeter * perimeter))
            if circularity > cfg["min_circularity"]:
                (x, y), radius = cv2.minEnclosingCircle(cnt)
                candidates.append({
                    "center": (int(round(x)), int(round(y))),
                    "radius": int(max(3, round(radius))),
                    "circularity": circularity,
                })
        return candidates

    def _score_candidates(self, gray, candidates):
        """Score by ring contrast + centre proximity + gradient ring."""
        h, w = gray.shape
        cx_frame, cy_frame = w / 2, h / 2
        cfg = self.config
        ring = cfg["contrast_ring"]

        scored = []
        for c in candidates:
            cx, cy = c["center"]
            r = c["radius"]
            outer_r = int(r * ring)

            x1, y1 = max(0, cx - outer_r), max(0, cy - outer_r)
            x2, y2 = min(w, cx + outer_r), min(h, cy + outer_r)
            roi = gray[y1:y2, x1:x2]
            if roi.size == 0:
                continue
            Y, X = np.ogrid[y1:y2, x1:x2]
            dist = np.sqrt((X - cx) ** 2 + (Y - cy) ** 2)

            inner_mask = dist <= r
            outer_mask = (dist > r) & (dist <= outer_r)
            if not np.any(inner_mask) or not np.any(outer_mask):
                continue
            inner_mean = np.mean(roi[inner_mask])
            outer_mean = np.mean(roi[outer_mask])

            contrast_score = outer_mean - inner_mean
            if contrast_score <= cfg["min_contrast"]:
                continue

            # Gradient ring: mid-ring brightness sits between inner and outer
            mid_r = int(r * (1 + ring) / 2)
            mid_mask = (dist > r) & (dist <= mid_r)
            mid_mean = np.mean(roi[mid_mask]) if np.any(mid_mask) else inner_mean
            gradient_ok = inner_mean < mid_mean <= outer_mean
            gradient_bonus = cfg["gradient_weight"] * contrast_score if gradient_ok else 0

            # Centre proximity: a gated close-up has its pupil near the middle
            dist_to_center = np.sqrt((cx - cx_frame) ** 2 + (cy - cy_frame) ** 2)
            max_dist = np.sqrt(cx_frame ** 2 + cy_frame ** 2)
            proximity_score = 1.0 - (dist_to_center / max_dist)
            center_bonus = cfg["center_weight"] * contrast_score * proximity_score

            c["score"] = contrast_score + gradient_bonus + center_bonus
            c["contrast"] = contrast_score
            scored.append(c)

        scored.sort(key=lambda x: x["score"], reverse=True)
        return scored

    # ═══════════════════════════════════════════════════════════
    # Stage 2: Iris Circle Fitting
    # ═══════════════════════════════════════════════════════════
    def _fit_iris_circle(self, gray, pupil_cx, pupil_cy, pupil_r):
        """
        Cast rays outward from beyond the pupil edge, take the first strong
        brightening on each as an iris-sclera boundary point, then RANSAC-fit
        a circle. Returns (center, radius, inlier_ratio); center is None on failure.
        """
        cfg = self.config
        h, w = gray.shape
        min_r = int(pupil_r * cfg["iris_start_ratio"])
        max_r = int(min(h, w) * cfg["iris_max_radius_fraction"])
        if max_r <= min_r:
            return None, None, 0.0

        angles = np.linspace(0, 2 * np.pi, cfg["iris_num_rays"], endpoint=False)
        boundary_points = []

        for angle in angles:
            dx = np.cos(angle)
            dy = np.sin(angle)

            samples = []
            coords = []
            for dist in range(min_r, max_r + 1):
                sx = int(pupil_cx + dx * dist)
                sy = int(pupil_cy + dy * dist)
                if 0 <= sx < w and 0 <= sy < h:
                    samples.append(float(gray[sy, sx]))
                    coords.append((sx, sy, dist))
                else:
                    break

            if len(samples) < 5:
                continue

            # Smooth a bit to avoid noise spikes, then look for brightening
            kernel_size = 3
            samples_smooth = np.convolve(np.array(samples), np.ones(kernel_size) / kernel_size,
                                         mode='valid')
            grad = np.diff(samples_smooth)
            offset = kernel_size // 2

            # First strong peak, not global max: lids and brows can be brighter edges
            peak_idx = -1
            for gi, gv in enumerate(grad):
                if gv >= cfg["iris_gradient_min"]:
                    peak_idx = gi
                    break
            if peak_idx < 0:
                continue

            coord_idx = peak_idx + offset
            if coord_idx < len(coords):
                sx, sy, _ = coords[coord_idx]
                boundary_points.append((sx, sy))

        if len(boundary_points) < 6:
            return None, None, 0.0

        # RANSAC circle fit
        points = np.array(boundary_points, dtype=np.float64)
        n_pts = len(points)
        thresh = cfg["iris_ransac_thresh"]
        rng = np.random.default_rng(cfg["ransac_seed"])
        best_circle = None
        best_inliers = 0

        for _ in range(cfg["iris_ransac_iters"]):
            idx = rng.choice(n_pts, 3, replace=False)
            circle = self._circle_from_3_points(*points[idx])
            if circle is None:
                continue
            cx, cy, r = circle
            if r < min_r or r > max_r:
                continue

            dists = np.sqrt((points[:, 0] - cx) ** 2 + (points[:, 1] - cy) ** 2)
            inliers = np.sum(np.abs(dists - r) < thresh)
            if inliers > best_inliers:
                best_inliers = inliers
                best_circle = circle

        if best_circle is None:
            return None, None, 0.0

        inlier_ratio = best_inliers / n_pts
        if inlier_ratio < cfg["iris_min_inlier_ratio"]:
            return None, None, inlier_ratio

        cx, cy, r = best_circle

        # Refine: refit using all inliers
        dists = np.sqrt((points[:, 0] - cx) ** 2 + (points[:, 1] - cy) ** 2)
        inlier_pts = points[np.abs(dists - r) < thresh]
        if len(inlier_pts) >= 3:
            refined = self._least_squares_circle(inlier_pts)
            if refined is not None:
                cx, cy, r = refined

        return (cx, cy), max(min_r, r), float(inlier_ratio)

    @staticmethod
    def _circle_from_3_points(p1, p2, p3):
        """Compute circle passing through 3 points. Returns (cx, cy, r) or None."""
        ax, ay = p1
        bx, by = p2
        cx, cy = p3

        d = 2 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
        if abs(d) < 1e-10:
            return None

        ux = ((ax * ax + ay * ay) * (by - cy) +
              (bx * bx + by * by) * (cy - ay) +
              (cx * cx + cy * cy) * (ay - by)) / d
        uy = ((ax * ax + ay * ay) * (cx - bx) +
              (bx * bx + by * by) * (ax - cx) +
              (cx * cx + cy * cy) * (bx - ax)) / d

        r = np.sqrt((ax - ux) ** 2 + (ay - uy) ** 2)
        return (ux, uy, r)

    @staticmethod
    def _least_squares_circle(points):
        """Algebraic least-squares circle fit. Returns (cx, cy, r) or None."""
        x = points[:, 0]
        y = points[:, 1]
        # x^2 + y^2 + Dx + Ey + F = 0
        A = np.column_stack([x, y, np.ones(len(x))])
        b = -(x ** 2 + y ** 2)
        try:
            result, _, _, _ = np.linalg.lstsq(A, b, rcond=None)
        except np.linalg.LinAlgError:
            return None

        D, E, F = result
        cx = -D / 2
        cy = -E / 2
        r_sq = cx ** 2 + cy ** 2 - F
        if r_sq <= 0:
            return None
        return (cx, cy, np.sqrt(r_sq))

    # ═══════════════════════════════════════════════════════════
    # Entry
    # ═══════════════════════════════════════════════════════════
    def segment(self, image):
        """GrayscaleRaster / BGR / gray ndarray -> IrisData."""
        gray = as_gray_array(image)
        orig_h, orig_w = gray.shape
        if orig_w == 0 or orig_h == 0:
            raise SegmentationError("Empty image")

        scale = self.proc_w / orig_w
        proc_h = max(1, int(orig_h * scale))
        small = cv2.resize(gray, (self.proc_w, proc_h)) if scale != 1.0 else gray
        if self.config["use_clahe"]:
            # CLAHE: normalize contrast across skin tones and lighting
            small = self.clahe.apply(np.ascontiguousarray(small))

        candidates = self._find_pupil_candidates(small)
        if not candidates:
            raise SegmentationError("No pupil candidate found")
        scored = self._score_candidates(small, candidates)
        if scored:
            pupil = scored[0]
        else:
            logger.debug("No candidate passed ring contrast; using most circular blob")
            pupil = max(candidates, key=lambda c: c["circularity"])

        pcx, pcy = pupil["center"]
        pr = pupil["radius"]

        center, iris_r, inlier_ratio = self._fit_iris_circle(small, pcx, pcy, pr)
        if center is None:
            logger.debug("Iris fit failed (inliers=%.2f); using concentric fallback", inlier_ratio)
            center = (pcx, pcy)
            iris_r = pr * self.config["iris_fallback_ratio"]
            inlier_ratio = 0.0

        def s(v):
            return int(round(v / scale))

        result = IrisData(
            pupil_center_x=s(pcx),
            pupil_center_y=s(pcy),
            pupil_radius=s(pr),
            iris_center_x=s(center[0]),
            iris_center_y=s(center[1]),
            iris_radius=s(iris_r),
            iris_confidence=inlier_ratio,
        )
        logger.info(
            "Pupil center(%d,%d) radius=%d; Iris center(%d,%d) radius=%d",
            result.pupil_center_x, result.pupil_center_y, result.pupil_radius,
            result.iris_center_x, result.iris_center_y, result.iris_radius,
        )
        return result


def segment_iris(image, config=None):
    return IrisSegmenter(config).segment(image)
