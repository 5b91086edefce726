"""
Small fixed-size projective geometry helpers.

Matrices are 3x3 float64 numpy arrays in row-major order. The 4x4 storage
form of a homography is a flat 16-vector laid out column-major, with the
third row and column left as identity.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

Point = Tuple[float, float]


def as_matrix3(m) -> np.ndarray:
    """Coerce a flat 9-sequence or 3x3 array into a float64 3x3 matrix."""
    return np.asarray(m, dtype=np.float64).reshape(3, 3)


def adjugate3(m) -> np.ndarray:
    """Transpose of the cofactor matrix. Equals det(m) * inverse(m) without dividing."""
    a = as_matrix3(m).ravel()
    return np.array([
        [a[4] * a[8] - a[5] * a[7], a[2] * a[7] - a[1] * a[8], a[1] * a[5] - a[2] * a[4]],
        [a[5] * a[6] - a[3] * a[8], a[0] * a[8] - a[2] * a[6], a[2] * a[3] - a[0] * a[5]],
        [a[3] * a[7] - a[4] * a[6], a[1] * a[6] - a[0] * a[7], a[0] * a[4] - a[1] * a[3]],
    ], dtype=np.float64)


def multiply_matrices3(a, b) -> np.ndarray:
    return as_matrix3(a) @ as_matrix3(b)


def multiply_matrix_vector3(m, v: Sequence[float]) -> np.ndarray:
    return as_matrix3(m) @ np.asarray(v, dtype=np.float64).reshape(3)


def embed_matrix4(t) -> np.ndarray:
    """Store a 3x3 homography as the flat column-major 4x4 used by ``project_point``."""
    t = as_matrix3(t)
    return np.array([
        t[0, 0], t[1, 0], 0.0, t[2, 0],
        t[0, 1], t[1, 1], 0.0, t[2, 1],
        0.0, 0.0, 1.0, 0.0,
        t[0, 2], t[1, 2], 0.0, t[2, 2],
    ], dtype=np.float64)


def extract_matrix3(m4) -> np.ndarray:
    """Inverse of ``embed_matrix4``."""
    m = np.asarray(m4, dtype=np.float64).ravel()
    return np.array([
        [m[0], m[4], m[12]],
        [m[1], m[5], m[13]],
        [m[3], m[7], m[15]],
    ], dtype=np.float64)


def project_point(m4, pt: Point) -> Point:
    """Map a canonical point through a stored 4x4 homography (homogeneous divide)."""
    m = m4
    x, y = pt
    denom = m[3] * x + m[7] * y + m[15]
    # a zero denominator yields inf/nan like IEEE division, never an exception
    with np.errstate(divide="ignore", invalid="ignore"):
        s = np.float64(1.0) / np.float64(denom)
        out_x = s * (m[0] * x + m[4] * y + m[12])
        out_y = s * (m[1] * x + m[5] * y + m[13])
    return float(out_x), float(out_y)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def round_half_away_array(values: np.ndarray) -> np.ndarray:
    return np.sign(values) * np.floor(np.abs(values) + 0.5)
