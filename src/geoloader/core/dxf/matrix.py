"""
Affine transforms for block reference expansion.

Transforms are 4x4 homogeneous matrices acting on column vectors, so
``a.compose(b)`` applies ``b`` first and then ``a``. Rotation is about the
Z axis (DXF block references in the XY plane).
"""

import math
from typing import Optional, Sequence, Tuple

import numpy as np

Point3 = Tuple[float, float, float]


class AffineTransform:
    """Immutable 3D affine transform."""

    __slots__ = ("_matrix",)

    def __init__(self, matrix: Optional[np.ndarray] = None):
        if matrix is None:
            matrix = np.identity(4)
        matrix = np.array(matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"expected a 4x4 matrix, got shape {matrix.shape}")
        matrix.setflags(write=False)
        self._matrix = matrix

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    @classmethod
    def identity(cls) -> "AffineTransform":
        return cls()

    @classmethod
    def translation(cls, dx: float, dy: float, dz: float = 0.0) -> "AffineTransform":
        matrix = np.identity(4)
        matrix[:3, 3] = (dx, dy, dz)
        return cls(matrix)

    @classmethod
    def rotation(cls, degrees: float) -> "AffineTransform":
        """Counter-clockwise rotation about the Z axis."""
        radians = math.radians(degrees)
        cos_a, sin_a = math.cos(radians), math.sin(radians)
        matrix = np.identity(4)
        matrix[0, 0], matrix[0, 1] = cos_a, -sin_a
        matrix[1, 0], matrix[1, 1] = sin_a, cos_a
        return cls(matrix)

    @classmethod
    def scaling(cls, sx: float, sy: float, sz: float = 1.0) -> "AffineTransform":
        return cls(np.diag([sx, sy, sz, 1.0]))

    @classmethod
    def for_insert(
        cls,
        position: Sequence[float],
        rotation: float = 0.0,
        scale: Sequence[float] = (1.0, 1.0, 1.0),
        base_point: Sequence[float] = (0.0, 0.0, 0.0),
        column: int = 0,
        row: int = 0,
        column_spacing: float = 0.0,
        row_spacing: float = 0.0,
    ) -> "AffineTransform":
        """
        Transform placing block geometry for one INSERT (or one MINSERT cell).

        Block coordinates are shifted by the block base point, scaled, offset
        by the array cell, rotated and finally moved to the insert position:
        ``T(position) . R(rotation) . T(cell) . S(scale) . T(-base_point)``.
        """
        sx, sy = scale[0], scale[1]
        sz = scale[2] if len(scale) > 2 else 1.0
        bz = base_point[2] if len(base_point) > 2 else 0.0
        pz = position[2] if len(position) > 2 else 0.0
        return (
            cls.translation(position[0], position[1], pz)
            .compose(cls.rotation(rotation))
            .compose(cls.translation(column * column_spacing, row * row_spacing))
            .compose(cls.scaling(sx, sy, sz))
            .compose(cls.translation(-base_point[0], -base_point[1], -bz))
        )

    def compose(self, other: "AffineTransform") -> "AffineTransform":
        """Transform applying ``other`` first, then ``self``."""
        return AffineTransform(self._matrix @ other._matrix)

    def __matmul__(self, other: "AffineTransform") -> "AffineTransform":
        return self.compose(other)

    def apply(self, point: Sequence[float]) -> Point3:
        """Transform a point; a missing Z is treated as 0."""
        z = point[2] if len(point) > 2 else 0.0
        x, y, z, _ = self._matrix @ np.array([point[0], point[1], z, 1.0])
        return (float(x), float(y), float(z))

    def apply_vector(self, vector: Sequence[float]) -> Point3:
        """Transform a direction (no translation)."""
        z = vector[2] if len(vector) > 2 else 0.0
        x, y, z = self._matrix[:3, :3] @ np.array([vector[0], vector[1], z])
        return (float(x), float(y), float(z))

    @property
    def determinant(self) -> float:
        """Determinant of the XY part; negative when the transform mirrors."""
        return float(np.linalg.det(self._matrix[:2, :2]))

    @property
    def is_mirrored(self) -> bool:
        return self.determinant < 0

    @property
    def scale_factor(self) -> float:
        """Uniform scale equivalent (geometric mean of the XY axis scales)."""
        return math.sqrt(abs(self.determinant))

    @property
    def is_uniform(self) -> bool:
        """True when the XY part maps circles to circles (no shear or stretch)."""
        x_axis, y_axis = self._matrix[:2, 0], self._matrix[:2, 1]
        return bool(
            math.isclose(np.dot(x_axis, x_axis), np.dot(y_axis, y_axis), rel_tol=1e-9)
            and abs(np.dot(x_axis, y_axis)) <= 1e-9 * max(np.dot(x_axis, x_axis), 1.0)
        )

    @property
    def rotation_degrees(self) -> float:
        """Rotation of the transformed X axis."""
        return math.degrees(math.atan2(self._matrix[1, 0], self._matrix[0, 0]))

    @property
    def is_identity(self) -> bool:
        return bool(np.allclose(self._matrix, np.identity(4)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AffineTransform):
            return NotImplemented
        return bool(np.allclose(self._matrix, other._matrix))

    def __hash__(self) -> int:
        return hash(tuple(np.round(self._matrix, 9).ravel()))

    def __repr__(self) -> str:
        return f"AffineTransform({self._matrix.tolist()!r})"
