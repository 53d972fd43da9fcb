"""
Rigid transforms for point cloud registration.

A RigidTransform is a proper rotation (det = +1) followed by a translation:

    p' = R @ p + t

Transforms compose like their 4x4 homogeneous matrices: `a @ b` applies `b`
first, then `a`. The identity transform is the neutral element.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


@dataclass(frozen=True, eq=False)
class RigidTransform:
    """Rotation + translation acting on Nx3 point arrays.

    Attributes:
        rotation: 3x3 rotation matrix
        translation: translation vector (3,)

    Example:
        >>> shift = RigidTransform.from_translation([1.0, 0.0, 0.0])
        >>> shift.apply(np.zeros((1, 3)))
        array([[1., 0., 0.]])
    """

    rotation: "NDArray[np.float64]"
    translation: "NDArray[np.float64]"

    def __post_init__(self) -> None:
        R = np.array(self.rotation, dtype=np.float64)
        t = np.array(self.translation, dtype=np.float64).reshape(-1)
        if R.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got shape {R.shape}")
        if t.shape != (3,):
            raise ValueError(f"Translation must have 3 components, got shape {t.shape}")
        R.setflags(write=False)
        t.setflags(write=False)
        object.__setattr__(self, "rotation", R)
        object.__setattr__(self, "translation", t)

    # ----------------- Constructors -----------------
    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_translation(cls, translation: "ArrayLike") -> "RigidTransform":
        return cls(np.eye(3), np.asarray(translation, dtype=np.float64))

    @classmethod
    def from_matrix(cls, matrix: "ArrayLike") -> "RigidTransform":
        """Create from a 4x4 homogeneous matrix.

        Raises:
            ValueError: If the matrix is not 4x4
        """
        M = np.asarray(matrix, dtype=np.float64)
        if M.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4 matrix, got {M.shape}")
        return cls(M[:3, :3], M[:3, 3])

    @classmethod
    def from_axis_angle(cls, axis: "ArrayLike", angle_rad: float,
                        translation: "ArrayLike" = (0.0, 0.0, 0.0)) -> "RigidTransform":
        """Rotation of `angle_rad` about `axis` (Rodrigues), then translation."""
        k = np.asarray(axis, dtype=np.float64)
        norm = float(np.linalg.norm(k))
        if norm == 0.0:
            raise ValueError("Rotation axis must be non-zero")
        k = k / norm
        K = np.array([
            [0.0, -k[2], k[1]],
            [k[2], 0.0, -k[0]],
            [-k[1], k[0], 0.0],
        ])
        R = np.eye(3) + np.sin(angle_rad) * K + (1.0 - np.cos(angle_rad)) * (K @ K)
        return cls(R, np.asarray(translation, dtype=np.float64))

    # ----------------- Algebra -----------------
    @property
    def matrix(self) -> "NDArray[np.float64]":
        """4x4 homogeneous matrix."""
        M = np.eye(4)
        M[:3, :3] = self.rotation
        M[:3, 3] = self.translation
        return M

    def compose(self, other: "RigidTransform") -> "RigidTransform":
        """Return the transform that applies `other` first, then `self`."""
        return RigidTransform(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def __matmul__(self, other: "RigidTransform") -> "RigidTransform":
        if not isinstance(other, RigidTransform):
            return NotImplemented
        return self.compose(other)

    def inverse(self) -> "RigidTransform":
        R_inv = self.rotation.T
        return RigidTransform(R_inv, -R_inv @ self.translation)

    def apply(self, points: "ArrayLike") -> "NDArray[np.float64]":
        """
        Apply the transform to a set of points.

        Args:
            points: Point coordinates (N x 3).

        Returns:
            Transformed coordinates (N x 3, float64).
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.size == 0:
            return pts.reshape(0, 3)
        # Direct affine transform; avoids building homogeneous coordinates
        return pts @ self.rotation.T + self.translation

    # ----------------- Diagnostics -----------------
    def determinant(self) -> float:
        return float(np.linalg.det(self.rotation))

    def is_proper(self, atol: float = 1e-5) -> bool:
        """True when the rotation is orthonormal with determinant +1."""
        orthonormal = np.allclose(self.rotation.T @ self.rotation, np.eye(3), atol=atol)
        return bool(orthonormal and abs(self.determinant() - 1.0) <= atol)

    def rotation_angle(self) -> float:
        """Rotation magnitude in radians."""
        # Clamp argument to arccos to valid range to avoid NaNs
        cos_theta = (float(np.trace(self.rotation)) - 1.0) * 0.5
        return float(np.arccos(max(min(cos_theta, 1.0), -1.0)))

    def translation_norm(self) -> float:
        return float(np.linalg.norm(self.translation))

    def allclose(self, other: "RigidTransform", atol: float = 1e-6) -> bool:
        return bool(
            np.allclose(self.rotation, other.rotation, atol=atol)
            and np.allclose(self.translation, other.translation, atol=atol)
        )

    def __repr__(self) -> str:
        angle_deg = np.rad2deg(self.rotation_angle())
        t = ", ".join(f"{v:.4f}" for v in self.translation)
        return f"RigidTransform(angle={angle_deg:.3f} deg, translation=[{t}])"
