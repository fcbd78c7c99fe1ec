# ===-----------------------------------------------------------------------===#
# Distributed under the 3-Clause BSD License. See accompanying file LICENSE or
# copy at https://opensource.org/licenses/BSD-3-Clause.
# SPDX-License-Identifier: BSD-3-Clause
# ===-----------------------------------------------------------------------===#

"""Node transforms.

Nodes keep a translation / rotation / scale triple. Rotations are unit
quaternions stored ``(x, y, z, w)`` like glTF. Matrices produced here are
row-major 4x4 ``float64`` arrays acting on column vectors (``M @ p``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .errors import E_UNSUPPORTED_TRANSFORM, structure_error

__all__ = [
    "Transform",
    "decompose_matrix",
    "quat_to_matrix",
    "matrix_to_quat",
    "quat_slerp",
    "IDENTITY_ROTATION",
]

IDENTITY_ROTATION = (0.0, 0.0, 0.0, 1.0)

_SINGULAR_EPS = 1e-8
_ORTHO_TOL = 1e-4


def quat_to_matrix(q: Sequence[float]) -> np.ndarray:
    """3x3 rotation matrix of an ``(x, y, z, w)`` quaternion."""
    x, y, z, w = (float(c) for c in q)
    n = math.sqrt(x * x + y * y + z * z + w * w)
    if n == 0.0:
        return np.eye(3)
    x, y, z, w = x / n, y / n, z / n, w / n
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def matrix_to_quat(r: np.ndarray) -> tuple[float, float, float, float]:
    """Unit ``(x, y, z, w)`` quaternion of a proper rotation matrix."""
    tr = r[0, 0] + r[1, 1] + r[2, 2]
    if tr > 0.0:
        s = math.sqrt(tr + 1.0) * 2.0
        w = 0.25 * s
        x = (r[2, 1] - r[1, 2]) / s
        y = (r[0, 2] - r[2, 0]) / s
        z = (r[1, 0] - r[0, 1]) / s
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = math.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2]) * 2.0
        w = (r[2, 1] - r[1, 2]) / s
        x = 0.25 * s
        y = (r[0, 1] + r[1, 0]) / s
        z = (r[0, 2] + r[2, 0]) / s
    elif r[1, 1] > r[2, 2]:
        s = math.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2]) * 2.0
        w = (r[0, 2] - r[2, 0]) / s
        x = (r[0, 1] + r[1, 0]) / s
        y = 0.25 * s
        z = (r[1, 2] + r[2, 1]) / s
    else:
        s = math.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1]) * 2.0
        w = (r[1, 0] - r[0, 1]) / s
        x = (r[0, 2] + r[2, 0]) / s
        y = (r[1, 2] + r[2, 1]) / s
        z = 0.25 * s
    q = np.array([x, y, z, w])
    q /= np.linalg.norm(q)
    if q[3] < 0.0:
        q = -q
    return (float(q[0]), float(q[1]), float(q[2]), float(q[3]))


def quat_slerp(a: np.ndarray, b: np.ndarray, s: float) -> np.ndarray:
    """Shortest-path spherical interpolation between two quaternions."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    dot = float(np.dot(a, b))
    if dot < 0.0:
        b = -b
        dot = -dot
    if dot > 0.9995:
        out = a + (b - a) * s
    else:
        theta0 = math.acos(min(dot, 1.0))
        sin0 = math.sin(theta0)
        theta = theta0 * s
        out = a * (math.sin(theta0 - theta) / sin0) + b * (
            math.sin(theta) / sin0
        )
    return out / np.linalg.norm(out)


@dataclass(slots=True)
class Transform:
    translation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float, float] = IDENTITY_ROTATION
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)

    def matrix(self) -> np.ndarray:
        """Compose ``T * R * S``."""
        m = np.eye(4)
        m[:3, :3] = quat_to_matrix(self.rotation) * np.asarray(self.scale)
        m[:3, 3] = self.translation
        return m

    @property
    def is_identity(self) -> bool:
        return (
            self.translation == (0.0, 0.0, 0.0)
            and self.rotation == IDENTITY_ROTATION
            and self.scale == (1.0, 1.0, 1.0)
        )

    @classmethod
    def from_matrix(cls, m: np.ndarray, **context) -> "Transform":
        return decompose_matrix(m, **context)


def decompose_matrix(m: np.ndarray, **context) -> Transform:
    """Split a row-major affine matrix into translation, rotation and scale.

    A negative determinant is folded into the X scale. Singular, skewed or
    projective matrices have no TRS form and raise
    ``E_UNSUPPORTED_TRANSFORM``.
    """
    m = np.asarray(m, dtype=np.float64)
    if m.shape != (4, 4) or not np.all(np.isfinite(m)):
        raise structure_error(
            E_UNSUPPORTED_TRANSFORM, "Matrix is not a finite 4x4", **context
        )
    if not np.allclose(m[3], (0.0, 0.0, 0.0, 1.0), atol=1e-6):
        raise structure_error(
            E_UNSUPPORTED_TRANSFORM,
            "Projective matrix cannot be expressed as TRS",
            **context,
        )
    basis = m[:3, :3]
    scale = np.linalg.norm(basis, axis=0)
    if np.any(scale < _SINGULAR_EPS):
        raise structure_error(
            E_UNSUPPORTED_TRANSFORM, "Singular matrix (zero scale)", **context
        )
    if np.linalg.det(basis) < 0.0:
        scale[0] = -scale[0]
    rot = basis / scale
    if not np.allclose(rot.T @ rot, np.eye(3), atol=_ORTHO_TOL):
        raise structure_error(
            E_UNSUPPORTED_TRANSFORM,
            "Matrix has skew or shear and cannot be decomposed",
            **context,
        )
    t = m[:3, 3]
    return Transform(
        translation=(float(t[0]), float(t[1]), float(t[2])),
        rotation=matrix_to_quat(rot),
        scale=(float(scale[0]), float(scale[1]), float(scale[2])),
    )
