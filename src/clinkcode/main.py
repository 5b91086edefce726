"""
Command-line entry point for decoding ClinkCodes.

Usage:
    clinkcode --image frame.png --aggregate cells.npy   # Decode a captured frame
    clinkcode --demo --code 1234                         # Decode a synthetic frame
    clinkcode --demo --verbose                           # Enable debug logging
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from .decoder import ClinkDecoder, FrameResult
from .pixels import PixelBuffer
from .synthetic import find_code, synthesize_frame
from .utils import decoder_config, get_config, setup_logging, validate_config

LOGGER = logging.getLogger(__name__)

DEMO_CORNERS = ((800.0, 400.0), (1100.0, 420.0), (790.0, 700.0), (1110.0, 690.0))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Decode ClinkCode markers from a frame and its cell aggregate buffer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  clinkcode --image frame.png --aggregate cells.npy
  clinkcode --demo --code 1234
        """,
    )
    parser.add_argument("--image", "-i", type=str, help="Frame image to sample")
    parser.add_argument(
        "--aggregate", "-a",
        type=str,
        help="Aggregate buffer as .npy or a JSON list of integers",
    )
    parser.add_argument("--config", "-c", type=str, help="JSON configuration file")
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Synthesize a frame containing one marker instead of reading files",
    )
    parser.add_argument(
        "--code",
        type=int,
        default=None,
        help="Payload to synthesize in demo mode (first value checking to 28 by default)",
    )
    parser.add_argument(
        "--verbose", "-V",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    return parser.parse_args(argv)


def load_aggregate(path: str) -> np.ndarray:
    """Read an aggregate buffer from ``.npy`` or JSON."""
    aggregate_path = Path(path)
    if not aggregate_path.exists():
        raise FileNotFoundError(f"Aggregate buffer not found: {path}")
    if aggregate_path.suffix == ".npy":
        return np.load(aggregate_path).astype(np.int32).ravel()
    with aggregate_path.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    return np.asarray(payload, dtype=np.int32).ravel()


def load_frame(path: str) -> PixelBuffer:
    """Read an image file into the 4-byte RGBA pixel layout."""
    frame = cv2.imread(path, cv2.IMREAD_COLOR)
    if frame is None:
        raise FileNotFoundError(f"Could not read image: {path}")
    return PixelBuffer.from_bgr(frame)


def report(result: FrameResult) -> None:
    if not result.codes:
        print("No ClinkCode found")
        return
    for clinkcode in result.codes:
        cx, cy = clinkcode.center
        print(f"ClinkCode {clinkcode.code} at ({cx:.1f}, {cy:.1f})")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level)

    config = get_config(args.config)
    if not args.verbose:
        setup_logging(config.get('logging', {}).get('level', 'INFO'))
    if not validate_config(config):
        return 1
    clink_config = decoder_config(config)
    decoder = ClinkDecoder(clink_config)

    try:
        if args.demo:
            code = args.code if args.code is not None else find_code(28)
            frame, aggregate = synthesize_frame(code, DEMO_CORNERS, clink_config)
            pixels = PixelBuffer.from_config(frame, clink_config)
        else:
            if not args.image or not args.aggregate:
                LOGGER.error("Both --image and --aggregate are required without --demo")
                return 1
            pixels = load_frame(args.image)
            aggregate = load_aggregate(args.aggregate)
    except (OSError, ValueError) as e:
        LOGGER.error("Failed to prepare input: %s", e)
        return 1

    result = decoder.decode_frame(aggregate, pixels)
    report(result)
    LOGGER.info("Decoded %d marker(s) in %.2f ms", len(result.codes), result.elapsed * 1000)
    return 0


if __name__ == "__main__":
    sys.exit(main())
