"""
Projective transform from four point correspondences.

Uses the basis method: for each quadrilateral, find the matrix that maps the
projective basis (the three unit points plus (1, 1, 1)) onto its four
corners, then chain destination basis with the adjugate of the source basis.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .geometry import (
    Point,
    adjugate3,
    embed_matrix4,
    multiply_matrices3,
    multiply_matrix_vector3,
)

LOGGER = logging.getLogger(__name__)


def form_basis(p1: Point, p2: Point, p3: Point, p4: Point) -> np.ndarray:
    """Matrix mapping the projective basis onto ``p1..p4``.

    Columns are the homogeneous ``p1, p2, p3`` scaled by the coefficients
    that express ``p4`` in their span.
    """
    m = np.array([
        [p1[0], p2[0], p3[0]],
        [p1[1], p2[1], p3[1]],
        [1.0, 1.0, 1.0],
    ], dtype=np.float64)
    v = multiply_matrix_vector3(adjugate3(m), (p4[0], p4[1], 1.0))
    return multiply_matrices3(m, np.diag(v))


def canonical_corners(grid_size: int = 6) -> Sequence[Point]:
    """Canonical top-left, top-right, bottom-left, bottom-right of a code grid.

    The corner tags sit one cell outside the data cells ``0..grid_size-1``.
    """
    n = float(grid_size)
    return (-1.0, -1.0), (n, -1.0), (-1.0, n), (n, n)


def build_homography(
    top_left: Point,
    top_right: Point,
    bottom_left: Point,
    bottom_right: Point,
    grid_size: int = 6,
) -> np.ndarray:
    """3x3 transform from canonical grid coordinates to pixel coordinates.

    Normalized so the bottom-right entry is 1. Degenerate corners produce
    non-finite entries rather than raising.
    """
    source = form_basis(*canonical_corners(grid_size))
    destination = form_basis(top_left, top_right, bottom_left, bottom_right)
    t = multiply_matrices3(destination, adjugate3(source))
    with np.errstate(divide="ignore", invalid="ignore"):
        t = t / t[2, 2]
    return t


def build_projection_matrix(
    top_left: Point,
    top_right: Point,
    bottom_left: Point,
    bottom_right: Point,
    grid_size: int = 6,
) -> np.ndarray:
    """Flat 4x4 storage form of ``build_homography``."""
    return embed_matrix4(
        build_homography(top_left, top_right, bottom_left, bottom_right, grid_size)
    )


def is_degenerate(matrix: np.ndarray) -> bool:
    """True when any entry is NaN or infinite (collinear or coincident corners)."""
    degenerate = not np.all(np.isfinite(matrix))
    if degenerate:
        LOGGER.debug("Degenerate projection matrix: %s", np.asarray(matrix).ravel())
    return degenerate
