"""
Iris Segmentation CLI — called by the Electron shell.

Usage:
  python main.py < image.b64           # base64 (or data URL) on stdin
  python main.py path/to/eye.jpg       # read an image file instead
  python main.py --detect-only [path]  # eye gate only, no segmentation

Only JSON is written to stdout; progress and errors go to stderr.
Exit code 0 on success or rejection, 1 on any error.
"""
import json
import logging
import sys

import cv2

from detector import EyeDetector
from pipeline import process_image
from raster import ImageDecodeError, decode_base64_image

logger = logging.getLogger("cli")


def read_image(args):
    paths = [a for a in args if not a.startswith("--")]
    if paths:
        logger.info("Reading image from %s", paths[0])
        img = cv2.imread(paths[0], cv2.IMREAD_COLOR)
        if img is None:
            raise ImageDecodeError(f"Could not read image file: {paths[0]}")
        return img

    logger.info("Reading image data from stdin...")
    data = sys.stdin.read()
    logger.info("Received image data of length: %d", len(data))
    if not data.strip():
        raise ValueError("No image data received from stdin")
    return decode_base64_image(data)


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    try:
        img = read_image(args)
        logger.info("Decoded image dimensions: %dx%d", img.shape[1], img.shape[0])

        if "--detect-only" in args:
            out = EyeDetector().detect(img).to_dict()
        else:
            out = process_image(img).to_response()
    except Exception as e:
        logger.error("CLI Error: %s - %s", type(e).__name__, e, exc_info=True)
        return 1

    print(json.dumps(out))
    return 0


if __name__ == "__main__":
    sys.exit(main())
