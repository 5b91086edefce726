"""
Demo script for decoding a synthetic ClinkCode frame.

Renders a marker into a blank frame, builds the matching aggregate buffer,
decodes it and draws the recovered corners and center. The annotated frame is
shown in a window, or written to disk with --output.
"""

import argparse
import logging
import os
import sys

import cv2
import numpy as np

# Add src directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from clinkcode.decoder import ClinkCode, ClinkDecoder  # type: ignore
from clinkcode.pixels import PixelBuffer  # type: ignore
from clinkcode.synthetic import find_code, synthesize_frame  # type: ignore
from clinkcode.utils import decoder_config, get_config, setup_logging  # type: ignore


LOGGER = logging.getLogger(__name__)

CORNERS = ((700.0, 300.0), (1150.0, 360.0), (640.0, 760.0), (1180.0, 800.0))


def _draw_code(frame, clinkcode: ClinkCode):
    """Outline the marker, label its corners and mark the center."""
    tl, tr, bl, br = [tuple(int(round(c)) for c in p) for p in clinkcode.corners.positions()]
    outline = np.array([tl, tr, br, bl], dtype=np.int32)
    cv2.polylines(frame, [outline], True, (0, 255, 0), 2, cv2.LINE_AA)

    for label, point in (("TL", tl), ("TR", tr), ("BL", bl), ("BR", br)):
        cv2.circle(frame, point, 6, (0, 0, 255), -1, cv2.LINE_AA)
        cv2.putText(frame, label, (point[0] + 8, point[1] - 8),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 2, cv2.LINE_AA)

    cx, cy = (int(round(c)) for c in clinkcode.center)
    cv2.drawMarker(frame, (cx, cy), (255, 0, 255), cv2.MARKER_CROSS, 20, 2)
    cv2.putText(frame, f"code {clinkcode.code}", (cx + 12, cy + 24),
                cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 0, 255), 2, cv2.LINE_AA)


def run_demo(code=None, output=None):
    """Synthesize, decode and display one frame."""
    print("ClinkCode - Synthetic Demo")
    print("=" * 40)

    setup_logging()
    config = decoder_config(get_config())
    decoder = ClinkDecoder(config)

    code = find_code(28) if code is None else code
    frame, aggregate = synthesize_frame(code, CORNERS, config)
    result = decoder.decode_frame(aggregate, PixelBuffer.from_config(frame, config))

    if not result.found:
        print(f"Failed to decode synthetic code {code}")
        return False

    display = cv2.cvtColor(frame, cv2.COLOR_RGBA2BGR)
    for clinkcode in result.codes:
        print(f"Decoded {clinkcode.code} at ({clinkcode.center[0]:.1f}, {clinkcode.center[1]:.1f})")
        _draw_code(display, clinkcode)

    if output:
        cv2.imwrite(output, display)
        print(f"Annotated frame written to {output}")
        return True

    cv2.imshow("ClinkCode demo", display)
    print("Press any key to close the window")
    cv2.waitKey(0)
    cv2.destroyAllWindows()
    return True


def main():
    """Main entry point for demo."""
    parser = argparse.ArgumentParser(description="Decode a synthetic ClinkCode frame")
    parser.add_argument("--code", type=int, default=None, help="Payload to render")
    parser.add_argument("--output", "-o", type=str, default=None, help="Write the annotated frame here")
    args = parser.parse_args()

    try:
        success = run_demo(args.code, args.output)
    except ValueError as e:
        print(f"Demo error: {e}")
        sys.exit(1)
    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
