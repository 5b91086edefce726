"""
Opposite-corner pairing of same-type tags.

Diagonal corners of one marker face each other, so their orientation
vectors nearly cancel. Candidates are ranked by how close the sum of the
two vectors is to zero.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .geometry import Point
from .tags import ExtractedTag

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OppositeTagPair:
    """Two same-type tags hypothesized as opposite corners of one marker."""

    tag_a: ExtractedTag
    tag_b: ExtractedTag

    @property
    def center_xy(self) -> Point:
        return (self.tag_a.x + self.tag_b.x) / 2.0, (self.tag_a.y + self.tag_b.y) / 2.0

    @property
    def separation(self) -> float:
        return math.hypot(self.tag_a.x - self.tag_b.x, self.tag_a.y - self.tag_b.y)

    def is_compatible(self, other: "OppositeTagPair") -> bool:
        """Midpoints closer than half the smaller separation."""
        cx, cy = self.center_xy
        ox, oy = other.center_xy
        dist = math.hypot(cx - ox, cy - oy)
        return dist < min(self.separation, other.separation) / 2.0


def orientation_mismatch(tag: ExtractedTag, other: ExtractedTag) -> float:
    """Magnitude of the summed orientation vectors; zero for exact opposites."""
    return math.hypot(tag.orient_x + other.orient_x, tag.orient_y + other.orient_y)


def find_opposite_corner_tags(
    tag: ExtractedTag,
    candidates: Sequence[ExtractedTag],
    start_at: int = 0,
    match_ratio: float = 1.5,
) -> List[ExtractedTag]:
    """Tags from ``candidates[start_at:]`` that could be ``tag``'s opposite corner, best first."""
    threshold = tag.orient_hypot / match_ratio
    matches: List[Tuple[float, ExtractedTag]] = []
    for other in candidates[start_at:]:
        if other.cell_index == tag.cell_index:
            continue
        mismatch = orientation_mismatch(tag, other)
        if mismatch < threshold:
            matches.append((mismatch, other))
    # stable: equal mismatches keep scan order
    matches.sort(key=lambda item: item[0])
    return [other for _, other in matches]


def generate_opposite_tag_pairs(
    tags: Sequence[ExtractedTag],
    match_ratio: float = 1.5,
) -> List[OppositeTagPair]:
    """Every plausible pairing among tags of one type; each unordered pair is tried once."""
    pairs: List[OppositeTagPair] = []
    for i, tag in enumerate(tags):
        for other in find_opposite_corner_tags(tag, tags, start_at=i + 1, match_ratio=match_ratio):
            pairs.append(OppositeTagPair(tag_a=tag, tag_b=other))
    return pairs


def compatible_pairs(
    cw_pairs: Sequence[OppositeTagPair],
    ccw_pairs: Sequence[OppositeTagPair],
) -> List[Tuple[OppositeTagPair, OppositeTagPair]]:
    """All (CW, CCW) combinations whose midpoints coincide."""
    combos = [
        (cw_pair, ccw_pair)
        for cw_pair in cw_pairs
        for ccw_pair in ccw_pairs
        if cw_pair.is_compatible(ccw_pair)
    ]
    LOGGER.debug(
        "Pair candidates: %d CW x %d CCW -> %d compatible",
        len(cw_pairs),
        len(ccw_pairs),
        len(combos),
    )
    return combos
