"""
Tests for the affine transforms used in block expansion.
"""

import pytest

from geoloader.core.dxf.matrix import AffineTransform


def _approx(point):
    return pytest.approx(point, abs=1e-9)


class TestAffineTransform:
    """Tests for AffineTransform."""

    def test_identity(self) -> None:
        """Test the identity leaves points unchanged."""
        transform = AffineTransform.identity()
        assert transform.is_identity
        assert transform.apply((3.0, 4.0)) == (3.0, 4.0, 0.0)

    def test_translation(self) -> None:
        """Test translation including Z."""
        assert AffineTransform.translation(1, 2, 3).apply((1, 1, 1)) == (2.0, 3.0, 4.0)

    def test_rotation_is_counter_clockwise(self) -> None:
        """Test a 90 degree rotation maps the X axis onto the Y axis."""
        assert AffineTransform.rotation(90).apply((1, 0)) == _approx((0.0, 1.0, 0.0))

    def test_compose_applies_right_operand_first(self) -> None:
        """Test that a.compose(b) applies b and then a."""
        move = AffineTransform.translation(10, 0)
        scale = AffineTransform.scaling(2, 2)
        assert move.compose(scale).apply((1, 1)) == (12.0, 2.0, 0.0)
        assert (scale @ move).apply((1, 1)) == (22.0, 2.0, 0.0)

    def test_for_insert_order(self) -> None:
        """Test base point, scale, rotation and position are applied in order."""
        transform = AffineTransform.for_insert(
            (100, 200), rotation=90, scale=(2, 2, 1), base_point=(1, 0, 0)
        )
        # (2, 0) -> base -> (1, 0) -> scale -> (2, 0) -> rotate -> (0, 2) -> move
        assert transform.apply((2, 0)) == _approx((100.0, 202.0, 0.0))

    def test_for_insert_array_cell(self) -> None:
        """Test MINSERT cell offsets are applied before rotation."""
        transform = AffineTransform.for_insert(
            (0, 0), rotation=90, column=2, row=1, column_spacing=10, row_spacing=5
        )
        assert transform.apply((0, 0)) == _approx((-5.0, 20.0, 0.0))

    def test_mirroring(self) -> None:
        """Test negative scale is detected as mirroring."""
        assert AffineTransform.scaling(-1, 1).is_mirrored
        assert not AffineTransform.rotation(45).is_mirrored

    def test_scale_factor_and_rotation(self) -> None:
        """Test derived uniform scale and rotation angle."""
        transform = AffineTransform.rotation(30).compose(AffineTransform.scaling(3, 3))
        assert transform.scale_factor == pytest.approx(3.0)
        assert transform.rotation_degrees == pytest.approx(30.0)

    def test_uniform(self) -> None:
        """Test rotations, mirrors and equal scales keep circles round."""
        assert AffineTransform.rotation(30).compose(AffineTransform.scaling(2, 2)).is_uniform
        assert AffineTransform.scaling(-2, 2).is_uniform
        assert not AffineTransform.scaling(1, 4).is_uniform

    def test_apply_vector_ignores_translation(self) -> None:
        """Test directions are not translated."""
        transform = AffineTransform.translation(5, 5).compose(AffineTransform.scaling(2, 2))
        assert transform.apply_vector((1, 0)) == (2.0, 0.0, 0.0)

    def test_equality_and_hash(self) -> None:
        """Test equal matrices compare and hash equal."""
        a = AffineTransform.translation(1, 2)
        b = AffineTransform.translation(1, 2)
        assert a == b
        assert hash(a) == hash(b)
        assert a != AffineTransform.translation(2, 1)

    def test_matrix_is_read_only(self) -> None:
        """Test the underlying matrix cannot be mutated."""
        with pytest.raises(ValueError):
            AffineTransform.identity().matrix[0, 3] = 5.0

    def test_rejects_wrong_shape(self) -> None:
        """Test non-4x4 input is rejected."""
        with pytest.raises(ValueError):
            AffineTransform([[1, 0], [0, 1]])
