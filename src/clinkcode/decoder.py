"""
ClinkCode decoding and validation.

A candidate marker is a CW opposite-corner pair plus a compatible CCW pair.
Its corners are oriented, a canonical-grid-to-pixel homography is built, and
the 6x6 cell grid is sampled through it:

- the main and anti diagonals resolve orientation and carry a 6-bit value
  that must be one of the whitelisted patterns,
- the remaining 24 cells carry the payload, whose string hash must reduce
  to the diagonal value.

Every failure is a silent rejection; nothing in the per-frame path raises.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .config import ClinkConfiguration, CornerType
from .geometry import Point, project_point
from .homography import build_projection_matrix, is_degenerate
from .pairing import OppositeTagPair, compatible_pairs, generate_opposite_tag_pairs
from .pixels import PixelBuffer
from .tags import (
    ExtractedTag,
    TagsByType,
    board_possibly_present,
    code_possibly_present,
    code_tags,
    extract_tags_by_type,
)

LOGGER = logging.getLogger(__name__)

CHECKSUM_BIAS = 12
CHECKSUM_MODULUS = 64


def simple_hash(text: str) -> int:
    """Order-dependent 32-bit string hash (``h = 31*h + byte``)."""
    h = 0
    for byte in text.encode("utf-8"):
        h = (31 * h + byte) & 0xFFFFFFFF
    return h


def checksum(code: int) -> int:
    """Checksum of a payload: hash of its base-2 digits, less 12, mod 64."""
    return (simple_hash(format(code, "b")) - CHECKSUM_BIAS) % CHECKSUM_MODULUS


class DecodeStatus(Enum):
    VALID = "valid"
    ROTATE = "rotate"  # readable once the corners are turned 180 degrees
    REJECTED = "rejected"


@dataclass(frozen=True, eq=False)
class DecodeOutcome:
    """Result of one decode attempt over a fixed corner assignment."""

    status: DecodeStatus
    code: int = 0
    center: Optional[Point] = None
    projection_matrix: Optional[np.ndarray] = None
    reason: str = ""

    @classmethod
    def rejected(cls, reason: str, projection_matrix: Optional[np.ndarray] = None) -> "DecodeOutcome":
        return cls(DecodeStatus.REJECTED, reason=reason, projection_matrix=projection_matrix)

    @property
    def legacy_code(self) -> int:
        """Integer form: the code when valid, -1 for rotate, 0 when rejected."""
        if self.status is DecodeStatus.VALID:
            return self.code
        if self.status is DecodeStatus.ROTATE:
            return -1
        return 0


@dataclass(frozen=True)
class MarkerCorners:
    """Corner tags of one marker, labelled in its own frame."""

    top_left: ExtractedTag
    top_right: ExtractedTag
    bottom_left: ExtractedTag
    bottom_right: ExtractedTag

    def rotated(self) -> "MarkerCorners":
        """The same corners relabelled for a 180 degree turn."""
        return MarkerCorners(
            top_left=self.bottom_right,
            top_right=self.bottom_left,
            bottom_left=self.top_right,
            bottom_right=self.top_left,
        )

    def positions(self) -> Tuple[Point, Point, Point, Point]:
        return self.top_left.xy, self.top_right.xy, self.bottom_left.xy, self.bottom_right.xy


@dataclass(frozen=True, eq=False)
class ClinkCode:
    """A decoded marker."""

    corners: MarkerCorners
    projection_matrix: np.ndarray
    code: int
    center: Point

    @property
    def is_valid(self) -> bool:
        return self.code > 0

    @property
    def top_left(self) -> ExtractedTag:
        return self.corners.top_left

    @property
    def top_right(self) -> ExtractedTag:
        return self.corners.top_right

    @property
    def bottom_left(self) -> ExtractedTag:
        return self.corners.bottom_left

    @property
    def bottom_right(self) -> ExtractedTag:
        return self.corners.bottom_right

    def project(self, pt: Point) -> Point:
        """Pixel position of a canonical grid coordinate."""
        return project_point(self.projection_matrix, pt)

    def to_dict(self) -> Dict:
        return {
            "code": self.code,
            "center": list(self.center),
            "corners": [list(p) for p in self.corners.positions()],
        }


def assemble_corners(cw_pair: OppositeTagPair, ccw_pair: OppositeTagPair) -> MarkerCorners:
    """Label the four corners of a candidate.

    The CW pair spans top-left to bottom-right, with the upper tag taken as
    top-left. The CCW tags are assigned so that top-left's orientation points
    at bottom-left rather than top-right.
    """
    top_left, bottom_right = cw_pair.tag_a, cw_pair.tag_b
    if top_left.y > bottom_right.y:
        top_left, bottom_right = bottom_right, top_left
    top_right, bottom_left = ccw_pair.tag_a, ccw_pair.tag_b
    error_to_bottom = top_left.pointing_error_to(bottom_left)
    error_to_right = top_left.pointing_error_to(top_right)
    if error_to_right < error_to_bottom:
        top_right, bottom_left = bottom_left, top_right
    return MarkerCorners(
        top_left=top_left,
        top_right=top_right,
        bottom_left=bottom_left,
        bottom_right=bottom_right,
    )


def read_code(
    projection_matrix: np.ndarray,
    pixels: PixelBuffer,
    config: Optional[ClinkConfiguration] = None,
) -> DecodeOutcome:
    """Sample the grid through ``projection_matrix`` and validate the payload."""
    config = config or ClinkConfiguration()
    n = config.code_grid_size
    m = projection_matrix

    diagonal_a: List[int] = []
    diagonal_b: List[int] = []
    total = 0
    for i in range(n):
        lum_a = pixels.luminance(*project_point(m, (float(i), float(i))))
        lum_b = pixels.luminance(*project_point(m, (float(n - 1 - i), float(i))))
        if lum_a is None or lum_b is None:
            return DecodeOutcome.rejected("diagonal sample outside frame", m)
        diagonal_a.append(lum_a)
        diagonal_b.append(lum_b)
        total += lum_a + lum_b
    avg_lum = total // (2 * n)

    diagonal_value = 0
    reverse_diagonal_value = 0
    for i in range(n):
        bit_a = 1 if diagonal_a[i] < avg_lum else 0
        bit_b = 1 if diagonal_b[i] < avg_lum else 0
        if bit_a == bit_b:
            return DecodeOutcome.rejected(f"ambiguous diagonals at index {i}", m)
        if bit_a:
            reverse_diagonal_value |= 1 << i
            diagonal_value |= 1 << (n - 1 - i)

    if reverse_diagonal_value in config.valid_diagonals:
        return DecodeOutcome(DecodeStatus.ROTATE, projection_matrix=m, reason="reversed diagonal")
    if diagonal_value not in config.valid_diagonals:
        return DecodeOutcome.rejected(f"diagonal {diagonal_value} not whitelisted", m)

    code_value = 0
    bit_index = 0
    for x in range(n):
        for y in range(n):
            if x == y or x == n - 1 - y:
                continue
            lum = pixels.luminance(*project_point(m, (float(x), float(y))))
            if lum is None:
                return DecodeOutcome.rejected("payload sample outside frame", m)
            if lum < avg_lum:
                code_value |= 1 << bit_index
            bit_index += 1

    if checksum(code_value) != diagonal_value:
        return DecodeOutcome.rejected(
            f"checksum {checksum(code_value)} != diagonal {diagonal_value}", m
        )
    return DecodeOutcome(DecodeStatus.VALID, code=code_value, projection_matrix=m)


def try_decode(
    corners: MarkerCorners,
    pixels: PixelBuffer,
    config: Optional[ClinkConfiguration] = None,
) -> DecodeOutcome:
    """Single decode attempt for a fixed corner labelling."""
    config = config or ClinkConfiguration()
    matrix = build_projection_matrix(*corners.positions(), grid_size=config.code_grid_size)
    if is_degenerate(matrix):
        return DecodeOutcome.rejected("degenerate homography", matrix)

    outcome = read_code(matrix, pixels, config)
    if outcome.status is not DecodeStatus.VALID:
        return outcome
    if outcome.code <= 0:
        return DecodeOutcome.rejected("non-positive code", matrix)
    center = project_point(matrix, config.center_point)
    return DecodeOutcome(DecodeStatus.VALID, code=outcome.code, center=center, projection_matrix=matrix)


def decode_marker(
    corners: MarkerCorners,
    pixels: PixelBuffer,
    config: Optional[ClinkConfiguration] = None,
) -> Optional[ClinkCode]:
    """Decode with at most one retry after a 180 degree relabelling."""
    outcome = try_decode(corners, pixels, config)
    if outcome.status is DecodeStatus.ROTATE:
        corners = corners.rotated()
        outcome = try_decode(corners, pixels, config)
        if outcome.status is not DecodeStatus.VALID:
            LOGGER.debug("Rejected after rotation: %s", outcome.reason or outcome.status.value)
            return None
    if outcome.status is not DecodeStatus.VALID:
        LOGGER.debug("Rejected candidate: %s", outcome.reason)
        return None
    return ClinkCode(
        corners=corners,
        projection_matrix=outcome.projection_matrix,
        code=outcome.code,
        center=outcome.center,
    )


@dataclass
class FrameResult:
    """Decoding output for one frame."""

    codes: List[ClinkCode] = field(default_factory=list)
    code_possible: bool = False
    board_detected: bool = False
    candidate_count: int = 0
    tag_counts: Dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def found(self) -> bool:
        return bool(self.codes)


class ClinkDecoder:
    """Runs extraction, pairing and per-candidate decoding for single frames.

    Holds only configuration; every frame is processed from scratch.
    """

    def __init__(self, config: Union[ClinkConfiguration, Mapping, None] = None):
        if isinstance(config, ClinkConfiguration):
            self.config = config
        else:
            self.config = ClinkConfiguration.from_dict(config)
        LOGGER.info(
            "ClinkDecoder initialized: grid=%dx%d, frame=%dx%d",
            self.config.grid_divisions_x,
            self.config.grid_divisions_y,
            self.config.frame_width,
            self.config.frame_height,
        )

    def pair_candidates(
        self, tags_by_type: TagsByType
    ) -> List[Tuple[OppositeTagPair, OppositeTagPair]]:
        cw_tags, ccw_tags = code_tags(tags_by_type)
        if len(cw_tags) < 2 or len(ccw_tags) < 2:
            return []
        ratio = self.config.orientation_match_ratio
        cw_pairs = generate_opposite_tag_pairs(cw_tags, match_ratio=ratio)
        ccw_pairs = generate_opposite_tag_pairs(ccw_tags, match_ratio=ratio)
        return compatible_pairs(cw_pairs, ccw_pairs)

    def decode_candidate(
        self,
        cw_pair: OppositeTagPair,
        ccw_pair: OppositeTagPair,
        pixels: PixelBuffer,
    ) -> Optional[ClinkCode]:
        return decode_marker(assemble_corners(cw_pair, ccw_pair), pixels, self.config)

    def decode_frame(self, aggregate, pixels: PixelBuffer) -> FrameResult:
        """Decode every marker visible in one frame."""
        start_time = time.perf_counter()
        result = FrameResult()

        code_possible = code_possibly_present(aggregate, self.config)
        board_possible = board_possibly_present(aggregate, self.config)
        if not (code_possible or board_possible):
            result.elapsed = time.perf_counter() - start_time
            return result

        with pixels.locked():
            tags_by_type = extract_tags_by_type(aggregate, self.config)
            result.tag_counts = {
                CornerType(t).name: len(tags) for t, tags in tags_by_type.items()
            }
            result.board_detected = board_possible and all(
                tags_by_type.get(t) for t in (
                    CornerType.BOARD_3PART_CW,
                    CornerType.BOARD_3PART_CCW,
                    CornerType.BOARD_4PART_RR,
                    CornerType.BOARD_4PART_BB,
                )
            )
            if code_possible:
                result.code_possible = True
                candidates = self.pair_candidates(tags_by_type)
                result.candidate_count = len(candidates)
                for cw_pair, ccw_pair in candidates:
                    clinkcode = self.decode_candidate(cw_pair, ccw_pair, pixels)
                    if clinkcode is not None:
                        LOGGER.info("Found clinkcode: %d", clinkcode.code)
                        result.codes.append(clinkcode)

        result.elapsed = time.perf_counter() - start_time
        LOGGER.debug(
            "Frame decoded in %.3f ms: %d candidates, %d codes",
            result.elapsed * 1000,
            result.candidate_count,
            len(result.codes),
        )
        return result

    def decode_tags(self, tags: Sequence[ExtractedTag], pixels: PixelBuffer) -> List[ClinkCode]:
        """Decode from already-extracted tags, bypassing the aggregate buffer."""
        tags_by_type: TagsByType = {}
        for tag in tags:
            tags_by_type.setdefault(tag.type, []).append(tag)
        codes = []
        with pixels.locked():
            for cw_pair, ccw_pair in self.pair_candidates(tags_by_type):
                clinkcode = self.decode_candidate(cw_pair, ccw_pair, pixels)
                if clinkcode is not None:
                    codes.append(clinkcode)
        return codes
