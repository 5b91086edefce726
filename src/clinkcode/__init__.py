"""
ClinkCode - fiducial marker decoding.

This package provides functionality for:
- Extracting corner tags from per-cell aggregate buffers
- Pairing opposite corners into marker candidates
- Projective mapping from the marker grid to pixels
- Sampling and checksum validation of the encoded payload
"""

from .config import CellField, ClinkConfiguration, CornerType, is_board_type, is_code_type
from .decoder import (
    ClinkCode,
    ClinkDecoder,
    DecodeOutcome,
    DecodeStatus,
    FrameResult,
    MarkerCorners,
    assemble_corners,
    checksum,
    decode_marker,
    read_code,
    simple_hash,
    try_decode,
)
from .homography import build_homography, build_projection_matrix, form_basis, is_degenerate
from .pairing import OppositeTagPair, compatible_pairs, generate_opposite_tag_pairs
from .pixels import PixelBuffer
from .tags import ExtractedTag, extract_tags_by_type, sort_tags_by_weight

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "CellField",
    "ClinkConfiguration",
    "CornerType",
    "is_board_type",
    "is_code_type",
    # Tags & pairing
    "ExtractedTag",
    "extract_tags_by_type",
    "sort_tags_by_weight",
    "OppositeTagPair",
    "compatible_pairs",
    "generate_opposite_tag_pairs",
    # Geometry
    "build_homography",
    "build_projection_matrix",
    "form_basis",
    "is_degenerate",
    # Pixels
    "PixelBuffer",
    # Decoding
    "ClinkCode",
    "ClinkDecoder",
    "DecodeOutcome",
    "DecodeStatus",
    "FrameResult",
    "MarkerCorners",
    "assemble_corners",
    "checksum",
    "decode_marker",
    "read_code",
    "simple_hash",
    "try_decode",
]
