"""
Synthetic markers and aggregate buffers.

Stands in for the camera and the pixel classifier when testing or demoing
the decoder: renders a marker's cell grid into an image and encodes corner
tags in the producer's aggregate buffer layout.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .config import CellField, ClinkConfiguration, CornerType
from .decoder import checksum
from .geometry import Point
from .homography import canonical_corners
from .tags import ExtractedTag

DARK = 0
LIGHT = 255


def checksum_matches(code: int, diagonal: int) -> bool:
    return checksum(code) == diagonal


def payload_width(grid_size: int = 6) -> int:
    """Number of payload cells: everything off the two diagonals."""
    return grid_size * grid_size - 2 * grid_size


def check_payload(code: int, grid_size: int = 6) -> None:
    width = payload_width(grid_size)
    if not 0 <= code < 1 << width:
        raise ValueError(f"Code {code} does not fit the {width} payload cells of a {grid_size}x{grid_size} grid")


def find_code(diagonal: int, start: int = 1, payload_bits: Optional[int] = None) -> int:
    """Smallest payload ``>= start`` whose checksum equals ``diagonal``."""
    if payload_bits is None:
        payload_bits = payload_width()
    for code in range(max(start, 1), 1 << payload_bits):
        if checksum(code) == diagonal:
            return code
    raise ValueError(f"No {payload_bits}-bit payload at or above {start} checks to {diagonal}")


def grid_bits(code: int, diagonal: int, grid_size: int = 6) -> np.ndarray:
    """Dark (1) / light (0) cells indexed ``[y, x]``.

    The main diagonal carries ``diagonal`` most significant bit first, the
    anti diagonal its complement, and the other cells the payload in
    x-major order, least significant bit first. Raises ``ValueError`` when
    ``code`` has more bits than there are payload cells.
    """
    check_payload(code, grid_size)
    n = grid_size
    bits = np.zeros((n, n), dtype=np.uint8)
    for i in range(n):
        bit = (diagonal >> (n - 1 - i)) & 1
        bits[i, i] = bit
        bits[i, n - 1 - i] = 1 - bit
    bit_index = 0
    for x in range(n):
        for y in range(n):
            if x == y or x == n - 1 - y:
                continue
            bits[y, x] = (code >> bit_index) & 1
            bit_index += 1
    return bits


def grid_to_pixel_transform(corners: Sequence[Point], grid_size: int = 6) -> np.ndarray:
    """OpenCV perspective transform from canonical grid to pixels.

    ``corners`` are top-left, top-right, bottom-left, bottom-right.
    """
    src = np.array(canonical_corners(grid_size), dtype=np.float32)
    dst = np.array(corners, dtype=np.float32).reshape(4, 2)
    return cv2.getPerspectiveTransform(src, dst)


def render_marker(
    frame: np.ndarray,
    corners: Sequence[Point],
    bits: np.ndarray,
    dark: int = DARK,
    light: int = LIGHT,
) -> np.ndarray:
    """Paint every grid cell as a filled quadrilateral in place."""
    n = bits.shape[0]
    transform = grid_to_pixel_transform(corners, n)
    channels = 1 if frame.ndim == 2 else frame.shape[2]
    for y in range(n):
        for x in range(n):
            quad = np.array([
                [x - 0.5, y - 0.5],
                [x + 0.5, y - 0.5],
                [x + 0.5, y + 0.5],
                [x - 0.5, y + 0.5],
            ], dtype=np.float32).reshape(-1, 1, 2)
            pts = cv2.perspectiveTransform(quad, transform).reshape(-1, 2)
            value = dark if bits[y, x] else light
            color = (value,) * min(channels, 3) + (255,) * max(channels - 3, 0)
            cv2.fillConvexPoly(frame, np.round(pts).astype(np.int32), color)
    return frame


def blank_frame(width: int, height: int, channels: int = 4, fill: int = 128) -> np.ndarray:
    frame = np.full((height, width, channels), fill, dtype=np.uint8)
    if channels == 4:
        frame[:, :, 3] = 255
    return frame


def cell_index_for(x: float, y: float, config: ClinkConfiguration) -> int:
    """Grid cell containing a pixel position."""
    cell_w = config.frame_width / config.grid_divisions_x
    cell_h = config.frame_height / config.grid_divisions_y
    col = min(max(int(x // cell_w), 0), config.grid_divisions_x - 1)
    row = min(max(int(y // cell_h), 0), config.grid_divisions_y - 1)
    return row * config.grid_divisions_x + col


def _unit_towards(src: Point, dst: Point, magnitude: float) -> Tuple[float, float]:
    dx, dy = dst[0] - src[0], dst[1] - src[1]
    length = math.hypot(dx, dy) or 1.0
    return magnitude * dx / length, magnitude * dy / length


def make_tag(
    corner_type: int,
    xy: Point,
    orient: Tuple[float, float],
    cell_index: int,
    weight: float = 16.0,
    dot_size: float = 4.0,
) -> ExtractedTag:
    return ExtractedTag(
        weight=float(weight),
        type=int(corner_type),
        type_flags=1 << int(corner_type),
        x=float(xy[0]),
        y=float(xy[1]),
        orient_x=float(orient[0]),
        orient_y=float(orient[1]),
        orient_hypot=math.hypot(orient[0], orient[1]),
        dot_size=float(dot_size),
        cell_index=int(cell_index),
    )


def make_corner_tags(
    corners: Sequence[Point],
    config: Optional[ClinkConfiguration] = None,
    cell_indices: Optional[Sequence[int]] = None,
    magnitude: float = 10.0,
    weight: float = 16.0,
) -> List[ExtractedTag]:
    """Code corner tags for a marker with the given top-left, top-right, bottom-left, bottom-right.

    Orientations run along the edges: top-left towards bottom-left,
    bottom-right towards top-right, top-right towards top-left and
    bottom-left towards bottom-right.
    """
    config = config or ClinkConfiguration()
    tl, tr, bl, br = corners
    if cell_indices is None:
        cell_indices = [cell_index_for(p[0], p[1], config) for p in corners]
    return [
        make_tag(CornerType.CODE_3PART_CW, tl, _unit_towards(tl, bl, magnitude), cell_indices[0], weight),
        make_tag(CornerType.CODE_3PART_CCW, tr, _unit_towards(tr, tl, magnitude), cell_indices[1], weight),
        make_tag(CornerType.CODE_3PART_CCW, bl, _unit_towards(bl, br, magnitude), cell_indices[2], weight),
        make_tag(CornerType.CODE_3PART_CW, br, _unit_towards(br, tr, magnitude), cell_indices[3], weight),
    ]


def build_aggregate(tags: Iterable[ExtractedTag], config: Optional[ClinkConfiguration] = None) -> np.ndarray:
    """Encode tags as the producer's flat int32 aggregate buffer."""
    config = config or ClinkConfiguration()
    data = np.zeros(config.aggregate_size, dtype=np.int64)
    used = set()
    for tag in tags:
        if not 0 <= tag.cell_index < config.num_grid_cells:
            raise ValueError(f"Cell index {tag.cell_index} outside the grid")
        if tag.cell_index in used:
            raise ValueError(f"Two tags share cell {tag.cell_index}")
        used.add(tag.cell_index)

        w = int(round(tag.weight))
        offset = config.num_tag_types + config.values_per_cell * tag.cell_index
        data[offset + CellField.TOTAL_WEIGHT] = w
        data[offset + CellField.TYPE_FLAGS] = tag.type_flags
        data[offset + CellField.TYPE_AVERAGE] = tag.type * w
        data[offset + CellField.X_COORD] = round(tag.x * w)
        data[offset + CellField.Y_COORD] = round(tag.y * w)
        data[offset + CellField.X_ORIENTATION] = round(tag.orient_x * w)
        data[offset + CellField.Y_ORIENTATION] = round(tag.orient_y * w)
        data[offset + CellField.DOT_SIZE] = round(tag.dot_size * w)
        data[tag.type] += w
    return data.astype(np.int32)


def synthesize_frame(
    code: int,
    corners: Sequence[Point],
    config: Optional[ClinkConfiguration] = None,
    diagonal: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """RGBA frame showing one marker plus the matching aggregate buffer."""
    config = config or ClinkConfiguration()
    check_payload(code, config.code_grid_size)
    if diagonal is None:
        diagonal = checksum(code)
        if diagonal not in config.valid_diagonals:
            raise ValueError(f"Code {code} checks to {diagonal}, which is not a valid diagonal")
    frame = blank_frame(config.frame_width, config.frame_height, config.bytes_per_pixel)
    render_marker(frame, corners, grid_bits(code, diagonal, config.code_grid_size))
    aggregate = build_aggregate(make_corner_tags(corners, config), config)
    return frame, aggregate
