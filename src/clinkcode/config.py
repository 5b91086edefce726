"""
Decoder configuration and shared constants.

The grid layout, frame geometry and corner-type enumeration must match the
stage that produces the per-cell aggregate buffer. A mismatch does not raise;
it silently yields zero decodes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Dict, Mapping, Optional, Tuple


class CornerType(IntEnum):
    """Corner-marker kinds reported by the pixel classifier."""
    BOARD_3PART_CW = 0
    CODE_3PART_CW = 1
    BOARD_3PART_CCW = 2
    CODE_3PART_CCW = 3
    BOARD_4PART_RR = 4
    MARKER_4PART_YY = 5  # unused
    BOARD_4PART_BB = 6


BOARD_TYPES = (
    CornerType.BOARD_3PART_CW,
    CornerType.BOARD_3PART_CCW,
    CornerType.BOARD_4PART_RR,
    CornerType.BOARD_4PART_BB,
)
CODE_TYPES = (CornerType.CODE_3PART_CW, CornerType.CODE_3PART_CCW)


def is_board_type(type_code: int) -> bool:
    return type_code in BOARD_TYPES


def is_code_type(type_code: int) -> bool:
    return type_code in CODE_TYPES


class CellField(IntEnum):
    """Offsets of the accumulated sums inside one grid cell record."""
    TOTAL_WEIGHT = 0
    TYPE_FLAGS = 1
    TYPE_AVERAGE = 2
    X_COORD = 3
    Y_COORD = 4
    X_ORIENTATION = 5
    Y_ORIENTATION = 6
    DOT_SIZE = 7


DEFAULT_VALID_DIAGONALS: Tuple[int, ...] = (28, 23, 49, 19, 52, 46, 13, 59)


@dataclass(frozen=True)
class ClinkConfiguration:
    """Immutable configuration shared by every decoding stage."""

    # Aggregate grid
    grid_resolution: int = 1
    grid_divisions_x: Optional[int] = None  # defaults to 16 * grid_resolution
    grid_divisions_y: Optional[int] = None  # defaults to 9 * grid_resolution
    num_tag_types: int = 30
    values_per_cell: int = 8

    # Frame buffer
    frame_width: int = 1920
    frame_height: int = 1080
    bytes_per_pixel: int = 4
    bytes_per_row: Optional[int] = None  # defaults to frame_width * bytes_per_pixel

    # Code layout
    code_grid_size: int = 6
    valid_diagonals: Tuple[int, ...] = DEFAULT_VALID_DIAGONALS
    orientation_match_ratio: float = 1.5
    center_point: Tuple[float, float] = field(default=(2.5, 2.5))

    def __post_init__(self):
        # frozen dataclass: derived defaults go through object.__setattr__
        if self.grid_divisions_x is None:
            object.__setattr__(self, "grid_divisions_x", 16 * self.grid_resolution)
        if self.grid_divisions_y is None:
            object.__setattr__(self, "grid_divisions_y", 9 * self.grid_resolution)
        if self.bytes_per_row is None:
            object.__setattr__(self, "bytes_per_row", self.frame_width * self.bytes_per_pixel)
        object.__setattr__(self, "valid_diagonals", tuple(int(v) for v in self.valid_diagonals))
        object.__setattr__(self, "center_point", tuple(float(v) for v in self.center_point))

        for name in (
            "grid_resolution",
            "grid_divisions_x",
            "grid_divisions_y",
            "num_tag_types",
            "values_per_cell",
            "frame_width",
            "frame_height",
            "code_grid_size",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.values_per_cell < len(CellField):
            raise ValueError(f"values_per_cell must be at least {len(CellField)}")
        if self.num_tag_types <= max(CornerType):
            raise ValueError("num_tag_types must cover every corner type")
        if self.bytes_per_pixel < 3:
            raise ValueError("bytes_per_pixel must hold at least three color channels")
        if self.bytes_per_row < self.frame_width * self.bytes_per_pixel:
            raise ValueError(
                f"bytes_per_row {self.bytes_per_row} is smaller than one row of pixels "
                f"({self.frame_width * self.bytes_per_pixel})"
            )
        if self.orientation_match_ratio <= 0:
            raise ValueError("orientation_match_ratio must be positive")

    @property
    def num_grid_cells(self) -> int:
        return self.grid_divisions_x * self.grid_divisions_y

    @property
    def aggregate_size(self) -> int:
        """Length of the flat aggregate buffer: presence counters plus cell records."""
        return self.num_tag_types + self.values_per_cell * self.num_grid_cells

    @classmethod
    def from_dict(cls, config: Optional[Mapping] = None) -> "ClinkConfiguration":
        """Build a configuration from a mapping, ignoring unknown keys."""
        cfg_dict = dict(config or {})
        return cls(**{
            k: v for k, v in cfg_dict.items()
            if k in cls.__dataclass_fields__
        })

    def to_dict(self) -> Dict:
        payload = asdict(self)
        payload["valid_diagonals"] = list(self.valid_diagonals)
        payload["center_point"] = list(self.center_point)
        return payload
