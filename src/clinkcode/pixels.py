"""
Bounds-checked access to a raw frame buffer.

The buffer is a flat run of bytes: ``height`` rows of ``bytes_per_row`` bytes,
each pixel ``bytes_per_pixel`` wide with its first three bytes treated as
color channels.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

from .config import ClinkConfiguration
from .geometry import round_half_away

LOGGER = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


class PixelBuffer:
    """Read-only view over a locked frame buffer."""

    def __init__(
        self,
        data,
        width: int,
        height: int,
        bytes_per_row: Optional[int] = None,
        bytes_per_pixel: int = 4,
    ):
        if width <= 0 or height <= 0:
            raise ValueError(f"Frame dimensions must be positive, got {width}x{height}")
        if bytes_per_pixel < 3:
            raise ValueError("bytes_per_pixel must be at least 3")
        bytes_per_row = width * bytes_per_pixel if bytes_per_row is None else bytes_per_row
        if bytes_per_row < width * bytes_per_pixel:
            raise ValueError(
                f"bytes_per_row {bytes_per_row} cannot hold {width} pixels of {bytes_per_pixel} bytes"
            )

        flat = np.frombuffer(data, dtype=np.uint8) if isinstance(data, (bytes, bytearray, memoryview)) \
            else np.asarray(data, dtype=np.uint8).reshape(-1)
        required = bytes_per_row * (height - 1) + width * bytes_per_pixel
        if flat.size < required:
            raise ValueError(f"Buffer holds {flat.size} bytes, need at least {required}")

        self._data = flat
        self._owner: Optional[np.ndarray] = None
        # the flat array may be a view; locking must reach the caller's array
        if isinstance(data, np.ndarray) and np.may_share_memory(flat, data):
            self._owner = data
        self.width = width
        self.height = height
        self.bytes_per_row = bytes_per_row
        self.bytes_per_pixel = bytes_per_pixel

    @classmethod
    def from_config(cls, data, config: ClinkConfiguration) -> "PixelBuffer":
        return cls(
            data,
            width=config.frame_width,
            height=config.frame_height,
            bytes_per_row=config.bytes_per_row,
            bytes_per_pixel=config.bytes_per_pixel,
        )

    @classmethod
    def from_array(cls, frame: np.ndarray) -> "PixelBuffer":
        """Wrap an ``(H, W, C)`` uint8 image, honoring its row stride."""
        if frame.ndim != 3 or frame.shape[2] < 3:
            raise ValueError(f"Expected an (H, W, C>=3) image, got shape {frame.shape}")
        if frame.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {frame.dtype}")
        height, width, channels = frame.shape
        if (
            frame.strides[2] != 1
            or frame.strides[1] != channels
            or frame.strides[0] < width * channels
        ):
            frame = np.ascontiguousarray(frame)
        row_stride = frame.strides[0]
        # view the rows including any padding so offsets follow the real stride
        flat = np.lib.stride_tricks.as_strided(
            frame, shape=(row_stride * (height - 1) + width * channels,), strides=(1,)
        )
        buffer = cls(flat, width, height, bytes_per_row=row_stride, bytes_per_pixel=channels)
        buffer._owner = frame
        return buffer

    @classmethod
    def from_bgr(cls, frame: np.ndarray) -> "PixelBuffer":
        """Convert a 3-channel BGR capture frame into the 4-byte RGBA layout."""
        if frame.ndim == 2:
            rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        else:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        return cls.from_array(rgba)

    @contextmanager
    def locked(self) -> Iterator["PixelBuffer"]:
        """Hold the buffer read-only for the duration of a decode."""
        target = self._owner if self._owner is not None else self._data
        was_writeable = target.flags.writeable
        target.flags.writeable = False
        try:
            yield self
        finally:
            if was_writeable:
                target.flags.writeable = True

    def sample(self, x: float, y: float) -> Optional[RGB]:
        """First three channel bytes at the nearest pixel, or None when outside the frame."""
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        px = round_half_away(x)
        py = round_half_away(y)
        if px < 0 or px >= self.width or py < 0 or py >= self.height:
            return None
        offset = py * self.bytes_per_row + px * self.bytes_per_pixel
        data = self._data
        return int(data[offset]), int(data[offset + 1]), int(data[offset + 2])

    def luminance(self, x: float, y: float) -> Optional[int]:
        """Sum of the three color channels at ``(x, y)``; None when out of bounds."""
        rgb = self.sample(x, y)
        if rgb is None:
            return None
        return rgb[0] + rgb[1] + rgb[2]
