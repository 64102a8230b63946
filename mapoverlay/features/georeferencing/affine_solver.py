"""
mapoverlay/features/georeferencing/affine_solver.py

Least-squares affine fit from image pixels to Web Mercator meters.

Model
-----
    X = a*px + b*py + c
    Y = d*px + e*py + f

Each matched pair contributes two rows to a ``2N x 6`` design matrix ``A``
and target vector ``B`` (targets are the pair's projected geographic
position). The normal equations ``(A^T A) x = A^T B`` are solved with
Gauss-Jordan elimination and partial pivoting. Three pairs determine the
system exactly; more pairs give an honest least-squares fit.

Pixel and target coordinates are centered on their means and divided by
their RMS radius before the normal equations are formed, so ``A^T A`` has
unit-sized entries and the absolute pivot tolerance separates collinear
points from well-spread ones at any pixel scale. ``a, b, d, e`` are rescaled
and ``c, f`` restored afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from affine import Affine

from mapoverlay.globals.configs import MIN_SOLVED_POINTS, PIVOT_TOLERANCE
from mapoverlay.features.georeferencing.errors import (
    InsufficientControlPointsError,
    NonFiniteProjectionError,
    SingularSystemError,
)
from mapoverlay.features.georeferencing.models import MatchedPair, TransformAccuracy
from mapoverlay.features.georeferencing.projection import to_mercator


@dataclass(frozen=True)
class SolvedAffine:
    transform: Affine
    accuracy: TransformAccuracy


def gauss_jordan(matrix: np.ndarray, rhs: np.ndarray, *, tolerance: float = PIVOT_TOLERANCE) -> np.ndarray:
    """Solve ``matrix @ x = rhs`` for a square system.

    The row with the largest absolute value in the pivot column is swapped
    into place at each step. Raises :class:`SingularSystemError` when the
    selected pivot is below ``tolerance``.
    """
    n = matrix.shape[0]
    if matrix.shape != (n, n) or rhs.shape[0] != n:
        raise ValueError(f"Expected a square system, got {matrix.shape} and {rhs.shape}.")

    aug = np.hstack([np.asarray(matrix, dtype=float), np.asarray(rhs, dtype=float).reshape(n, 1)])

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(aug[col:, col])))
        if pivot_row != col:
            aug[[col, pivot_row]] = aug[[pivot_row, col]]

        pivot = aug[col, col]
        if abs(pivot) < tolerance:
            raise SingularSystemError(col, float(pivot), tolerance)

        aug[col, col:] /= pivot
        for row in range(n):
            if row != col:
                factor = aug[row, col]
                if factor != 0.0:
                    aug[row, col:] -= factor * aug[col, col:]

    return aug[:, n].copy()


def _rms_radius(points: np.ndarray) -> float:
    return float(np.sqrt(np.mean(np.sum(points ** 2, axis=1))))

def apply_affine(transform: Affine, px, py):
    """(px, py) -> (X, Y); works on scalars and numpy arrays alike."""
    return (transform.a * px + transform.b * py + transform.xoff,
            transform.d * px + transform.e * py + transform.yoff)


def _project_pairs(pairs: Sequence[MatchedPair]) -> tuple[np.ndarray, np.ndarray]:
    """Return (pixels Nx2, mercator Nx2); raises on the first non-finite pair."""
    pixels = np.empty((len(pairs), 2), dtype=float)
    targets = np.empty((len(pairs), 2), dtype=float)
    for i, pair in enumerate(pairs):
        x, y = to_mercator(pair.geo_point.lat, pair.geo_point.lon)
        px, py = pair.control_point.pixel_x, pair.control_point.pixel_y
        if not np.all(np.isfinite([x, y, px, py])):
            raise NonFiniteProjectionError(pair.id, f"pixel=({px}, {py}) mercator=({x}, {y})")
        pixels[i] = (px, py)
        targets[i] = (x, y)
    return pixels, targets


def build_design_matrix(pixels: np.ndarray, targets: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Interleave X rows (a, b, c) and Y rows (d, e, f) into ``A`` and ``B``."""
    n = len(pixels)
    A = np.zeros((2 * n, 6), dtype=float)
    B = np.zeros(2 * n, dtype=float)

    A[0::2, 0] = pixels[:, 0]
    A[0::2, 1] = pixels[:, 1]
    A[0::2, 2] = 1.0
    B[0::2] = targets[:, 0]

    A[1::2, 3] = pixels[:, 0]
    A[1::2, 4] = pixels[:, 1]
    A[1::2, 5] = 1.0
    B[1::2] = targets[:, 1]
    return A, B


def solve_affine(pairs: Sequence[MatchedPair], *, pivot_tolerance: float = PIVOT_TOLERANCE) -> SolvedAffine:
    """Fit the 6-parameter affine map for three or more matched pairs."""
    if len(pairs) < MIN_SOLVED_POINTS:
        raise InsufficientControlPointsError(MIN_SOLVED_POINTS, len(pairs))

    pixels, targets = _project_pairs(pairs)
    pixel_mean = pixels.mean(axis=0)
    target_mean = targets.mean(axis=0)

    pixel_scale = _rms_radius(pixels - pixel_mean)
    if pixel_scale == 0.0:
        # every control pixel is the same point
        raise SingularSystemError(0, 0.0, pivot_tolerance)
    target_scale = _rms_radius(targets - target_mean) or 1.0

    A, B = build_design_matrix((pixels - pixel_mean) / pixel_scale, (targets - target_mean) / target_scale)
    params = gauss_jordan(A.T @ A, A.T @ B, tolerance=pivot_tolerance)
    ratio = target_scale / pixel_scale
    a, b, d, e = (float(v) * ratio for v in params[[0, 1, 3, 4]])
    c0, f0 = (float(v) * target_scale for v in params[[2, 5]])

    # undo the centering: X - Xm = a (px - pxm) + b (py - pym) + c0
    c = target_mean[0] + c0 - a * pixel_mean[0] - b * pixel_mean[1]
    f = target_mean[1] + f0 - d * pixel_mean[0] - e * pixel_mean[1]

    transform = Affine(*(float(v) for v in (a, b, c, d, e, f)))
    return SolvedAffine(transform=transform, accuracy=transform_accuracy(pairs, transform))


def transform_accuracy(pairs: Sequence[MatchedPair], transform: Affine) -> TransformAccuracy:
    """Re-project each control pixel and measure the miss in projected meters."""
    if not pairs:
        return TransformAccuracy(0.0, 0.0, 0.0, ())

    pixels, targets = _project_pairs(pairs)
    predicted = np.column_stack(apply_affine(transform, pixels[:, 0], pixels[:, 1]))
    errors = np.hypot(*(predicted - targets).T)

    return TransformAccuracy(
        mean_error_m=float(errors.mean()),
        max_error_m=float(errors.max()),
        min_error_m=float(errors.min()),
        per_point_errors=tuple(float(err) for err in errors),
    )
