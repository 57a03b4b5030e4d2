"""
Live Eye Gate preview.
Runs the eye gate on every camera frame and overlays the verdict.

Controls:
  s        = Segment the current frame (draws pupil + iris circles)
  c        = Clear the segmentation overlay
  q / ESC  = Quit
"""
import sys

import cv2

from detector import EyeDetector
from segmenter import IrisSegmenter, SegmentationError

ACCEPT_COLOR = (0, 255, 0)
REJECT_COLOR = (0, 0, 255)


def draw_verdict(frame, result, iris=None):
    """Draw the gate verdict (and optional circles) on a copy of `frame`."""
    out = frame.copy()
    color = ACCEPT_COLOR if result.is_eye else REJECT_COLOR
    label = "EYE" if result.is_eye else "NOT AN EYE"
    cv2.putText(out, f"{label}  conf={result.confidence:.1f}", (10, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2, cv2.LINE_AA)

    if result.signals is not None:
        sig = result.signals
        info = (f"circ={sig.circular_score:.2f} contrast={sig.contrast_ratio:.2f} "
                f"edges={sig.edge_density:.2f} dark={sig.dark_region_size}")
        cv2.putText(out, info, (10, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.55, (200, 200, 200), 1)

    cv2.putText(out, result.reason, (10, 85), cv2.FONT_HERSHEY_SIMPLEX, 0.45, color, 1,
                cv2.LINE_AA)

    if iris is not None:
        cv2.circle(out, (iris.pupil_center_x, iris.pupil_center_y), iris.pupil_radius,
                   (0, 255, 255), 2)
        cv2.circle(out, (iris.iris_center_x, iris.iris_center_y), iris.iris_radius,
                   (255, 255, 0), 2)
    return out


def main():
    print("Initializing eye gate...")
    detector = EyeDetector()
    segmenter = IrisSegmenter()

    cap = cv2.VideoCapture(0)
    if not cap.isOpened():
        print("Error: Could not open camera 0. Trying index 1...")
        cap = cv2.VideoCapture(1)
        if not cap.isOpened():
            print("Error: Could not open any camera.")
            sys.exit(1)

    print("Live check started. 's' = segment, 'c' = clear, 'q' = quit")
    iris = None

    while True:
        ret, frame = cap.read()
        if not ret:
            print("Error: Failed to grab frame.")
            break

        result = detector.detect(frame)
        cv2.imshow('Eye Gate', draw_verdict(frame, result, iris))

        key = cv2.waitKey(1) & 0xFF
        if key == ord('q') or key == 27:
            break
        elif key == ord('s'):
            if not result.is_eye:
                print(f"Rejected: {result.reason}")
                continue
            try:
                iris = segmenter(frame)
                print(f"Pupil ({iris.pupil_center_x},{iris.pupil_center_y}) r={iris.pupil_radius} | "
                      f"Iris ({iris.iris_center_x},{iris.iris_center_y}) r={iris.iris_radius}")
            except SegmentationError as e:
                print(f"Segmentation failed: {e}")
        elif key == ord('c'):
            iris = None

    cap.release()
    cv2.destroyAllWindows()
    cv2.waitKey(1)  # Extra pump for macOS cleanup
    print("Camera released.")


if __name__ == "__main__":
    main()
