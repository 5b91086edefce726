"""
Corner tag extraction from the per-cell aggregate buffer.

Each grid cell carries weighted sums accumulated by the pixel classifier.
Cells whose average type is a recognized board or code corner become one
``ExtractedTag``; everything else is skipped without complaint.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .config import (
    BOARD_TYPES,
    CODE_TYPES,
    CellField,
    ClinkConfiguration,
    CornerType,
    is_board_type,
    is_code_type,
)
from .geometry import Point, round_half_away_array

LOGGER = logging.getLogger(__name__)

TagsByType = Dict[int, List["ExtractedTag"]]


@dataclass(frozen=True)
class ExtractedTag:
    """Weighted-average corner observation from one grid cell."""

    weight: float
    type: int
    type_flags: int
    x: float
    y: float
    orient_x: float
    orient_y: float
    orient_hypot: float
    dot_size: float
    cell_index: int

    @property
    def xy(self) -> Point:
        return self.x, self.y

    def dist_to(self, tag: "ExtractedTag") -> float:
        return math.hypot(tag.x - self.x, tag.y - self.y)

    def pointing_error_to(self, tag: "ExtractedTag") -> float:
        """Distance between ``tag`` and the point this tag's orientation ray reaches at the same range."""
        if self.orient_hypot == 0:
            return math.inf
        dist = self.dist_to(tag)
        px = self.x + dist * self.orient_x / self.orient_hypot
        py = self.y + dist * self.orient_y / self.orient_hypot
        return math.hypot(px - tag.x, py - tag.y)


def _as_aggregate(data) -> np.ndarray:
    return np.asarray(data, dtype=np.int64).reshape(-1)


def presence_counts(data, config: ClinkConfiguration) -> np.ndarray:
    """The global per-type counters at the head of the aggregate buffer."""
    return _as_aggregate(data)[:config.num_tag_types]


def code_possibly_present(data, config: ClinkConfiguration) -> bool:
    """Cheap gate: both code corner types were seen more than once."""
    counts = presence_counts(data, config)
    if counts.size < config.num_tag_types:
        return False
    return all(counts[t] > 1 for t in CODE_TYPES)


def board_possibly_present(data, config: ClinkConfiguration) -> bool:
    counts = presence_counts(data, config)
    if counts.size < config.num_tag_types:
        return False
    return all(counts[t] > 0 for t in BOARD_TYPES)


def extract_tags_by_type(data, config: ClinkConfiguration) -> TagsByType:
    """Map each recognized corner type to its tags, in cell order."""
    aggregate = _as_aggregate(data)
    if aggregate.size < config.aggregate_size:
        LOGGER.warning(
            "Aggregate buffer too short: %d values, expected %d",
            aggregate.size,
            config.aggregate_size,
        )
        return {}

    cells = aggregate[config.num_tag_types:config.aggregate_size].reshape(
        config.num_grid_cells, config.values_per_cell
    ).astype(np.float64)
    weights = cells[:, CellField.TOTAL_WEIGHT]
    occupied = np.flatnonzero(weights > 0)
    if occupied.size == 0:
        return {}

    sums = cells[occupied]
    weight = weights[occupied]
    types = round_half_away_array(sums[:, CellField.TYPE_AVERAGE] / weight).astype(np.int64)
    averages = sums / weight[:, None]

    tags_by_type: TagsByType = {}
    for row, cell_index in enumerate(occupied):
        tag_type = int(types[row])
        if not (is_code_type(tag_type) or is_board_type(tag_type)):
            continue
        orient_x = float(averages[row, CellField.X_ORIENTATION])
        orient_y = float(averages[row, CellField.Y_ORIENTATION])
        tag = ExtractedTag(
            weight=float(weight[row]),
            type=tag_type,
            type_flags=int(aggregate[config.num_tag_types + config.values_per_cell * cell_index + CellField.TYPE_FLAGS]),
            x=float(averages[row, CellField.X_COORD]),
            y=float(averages[row, CellField.Y_COORD]),
            orient_x=orient_x,
            orient_y=orient_y,
            orient_hypot=math.hypot(orient_x, orient_y),
            dot_size=float(averages[row, CellField.DOT_SIZE]),
            cell_index=int(cell_index),
        )
        tags_by_type.setdefault(tag_type, []).append(tag)

    LOGGER.debug(
        "Extracted tags: %s",
        {CornerType(t).name: len(tags) for t, tags in tags_by_type.items()},
    )
    return tags_by_type


def sort_tags_by_weight(tags: Sequence[ExtractedTag]) -> List[ExtractedTag]:
    """Heaviest first; equal weights keep their original order."""
    return sorted(tags, key=lambda tag: -tag.weight)


def code_tags(tags_by_type: TagsByType) -> Tuple[List[ExtractedTag], List[ExtractedTag]]:
    """CW and CCW code corner tags, empty lists when a type is absent."""
    return (
        tags_by_type.get(CornerType.CODE_3PART_CW, []),
        tags_by_type.get(CornerType.CODE_3PART_CCW, []),
    )
