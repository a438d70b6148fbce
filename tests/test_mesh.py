"""
Unit tests for Cloud-in-Cell deposition
"""

import numpy as np
import pytest
from pycic import mesh, utils
from pycic.grid import GridConfig


@pytest.fixture
def config():
    return GridConfig.from_cells(16, 12)


@pytest.fixture
def position():
    return np.random.default_rng(1234).random((2000, 2))


def deposit(position, config, nthreads, **kwargs):
    out = np.empty(config.shape)
    mesh.CIC(out, position, config, nthreads, **kwargs)
    return out


class TestGridConfig:
    """Test grid configuration."""

    def test_from_cells(self):
        config = GridConfig.from_cells(4, 2)

        assert config.step_x == 0.25
        assert config.step_y == 0.5
        assert config.grid_width == 5
        assert config.grid_height == 3
        assert config.shape == (3, 5)
        assert config.size == 15
        assert config.extent_x == pytest.approx(1.0)

    def test_invalid(self):
        with pytest.raises(ValueError):
            GridConfig.from_cells(0, 4)


class TestStencil:
    """Test the bilinear weights of a single particle."""

    def test_areas_sum_to_cell_area(self, config, position):
        for x, y in position[:200]:
            i, j, a1, a2, a3, a4 = mesh.cic_stencil(x, y, config.step_x, config.step_y)

            assert 0 <= i < config.ncells_x
            assert 0 <= j < config.ncells_y
            assert min(a1, a2, a3, a4) >= 0
            assert a1 + a2 + a3 + a4 == pytest.approx(
                config.step_x * config.step_y, rel=1e-12
            )

    def test_corner_ordering(self):
        # Close to the bottom-right node of cell (0, 0)
        i, j, a1, a2, a3, a4 = mesh.cic_stencil(0.4, 0.1, 0.5, 0.5)

        assert (i, j) == (0, 0)
        assert a2 == max(a1, a2, a3, a4)
        assert a3 == min(a1, a2, a3, a4)

    def test_particle_on_interior_node(self):
        config = GridConfig.from_cells(2, 2)
        out = np.zeros(config.shape)
        mesh.deposit_point(out, mesh.Point(0.5, 0.5), config)

        expected = np.zeros(config.shape)
        expected[1, 1] = config.step_x * config.step_y
        np.testing.assert_array_equal(out, expected)

    def test_point_weight(self):
        config = GridConfig.from_cells(2, 2)
        out = np.zeros(config.shape)
        mesh.deposit_point(out, mesh.Point(0.3, 0.7, weight=3.0), config)

        assert out.sum() == pytest.approx(3.0 * 0.25)

    def test_point_outside(self):
        config = GridConfig.from_cells(2, 2)
        with pytest.raises(ValueError):
            mesh.deposit_point(np.zeros(config.shape), mesh.Point(1.0, 0.5), config)


class TestValidParticles:
    """Test the grid interior check."""

    def test_boundaries(self):
        config = GridConfig.from_cells(4, 4)
        position = np.array(
            [
                [0.0, 0.0],
                [0.5, 0.999],
                [1.0, 0.5],
                [0.5, 1.0],
                [-1e-12, 0.5],
                [0.5, np.nan],
            ]
        )
        assert mesh.valid_particles(position, config).tolist() == [
            True,
            True,
            False,
            False,
            False,
            False,
        ]

    def test_valid_cells_stay_inside(self):
        config = GridConfig.from_cells(3, 7)
        edge = np.nextafter(1.0, 0.0)
        position = np.array([[edge, edge], [edge, 0.5], [0.5, edge], [1 / 3, 6 / 7]])
        mask = mesh.valid_particles(position, config)
        for x, y in position[mask]:
            i, j, *_ = mesh.cic_stencil(x, y, config.step_x, config.step_y)
            assert i + 1 < config.grid_width
            assert j + 1 < config.grid_height


class TestCIC:
    """Test the multi-threaded deposition."""

    @pytest.mark.parametrize("nthreads", [1, 2, 4, 7])
    def test_global_conservation(self, config, position, nthreads):
        out = deposit(position, config, nthreads)

        expected = position.shape[0] * config.step_x * config.step_y
        assert out.sum() == pytest.approx(expected, rel=1e-12)
        assert np.all(out >= 0)

    def test_matches_point_by_point(self, config, position):
        expected = np.zeros(config.shape)
        for x, y in position[:50]:
            mesh.deposit_point(expected, mesh.Point(x, y), config)

        np.testing.assert_allclose(deposit(position[:50], config, 3), expected)

    def test_thread_count_invariance(self, config, position):
        reference = deposit(position, config, 1)
        for nthreads in [2, 3, 8, 16]:
            np.testing.assert_allclose(
                deposit(position, config, nthreads), reference, rtol=1e-12, atol=1e-15
            )

    def test_permutation_invariance(self, config, position):
        permuted = np.random.default_rng(7).permutation(position)

        np.testing.assert_allclose(
            deposit(permuted, config, 4),
            deposit(position, config, 4),
            rtol=1e-12,
            atol=1e-15,
        )

    def test_more_threads_than_particles(self, config):
        position = np.array([[0.1, 0.2], [0.8, 0.3]])
        out = deposit(position, config, 5)

        assert out.sum() == pytest.approx(2 * config.step_x * config.step_y)

    def test_no_particles(self, config):
        out = deposit(np.empty((0, 2)), config, 4)
        np.testing.assert_array_equal(out, np.zeros(config.shape))

    def test_mesh_is_reset(self, config, position):
        out = np.full(config.shape, 7.0)
        mesh.CIC(out, position, config, 2)

        np.testing.assert_allclose(out, deposit(position, config, 2))

    def test_particle_mass(self, config, position):
        out = deposit(position, config, 2, weight=2.5)

        expected = 2.5 * position.shape[0] * config.step_x * config.step_y
        assert out.sum() == pytest.approx(expected, rel=1e-12)

    def test_reused_buffers(self, config, position):
        buffers = np.full((3,) + config.shape, 42.0)
        out = deposit(position, config, 3, buffers=buffers)

        np.testing.assert_allclose(out, deposit(position, config, 1))

    def test_two_shards_equal_single_mesh(self):
        config = GridConfig.from_cells(4, 4)
        position = np.array([[0.1, 0.1], [0.3, 0.6], [0.55, 0.2], [0.9, 0.95]])
        counts, offsets = utils.partition(position.shape[0], 2)
        assert counts.tolist() == [2, 2]

        reduced = sum(
            deposit(position[o : o + c], config, 2) for c, o in zip(counts, offsets)
        )
        np.testing.assert_allclose(reduced, deposit(position, config, 2))


class TestCICErrors:
    """Test the input checks of the deposition."""

    @pytest.mark.parametrize("nthreads", [1, 4])
    def test_out_of_bounds_raise(self, config, nthreads):
        position = np.array([[0.2, 0.2], [1.0, 0.5]])
        with pytest.raises(ValueError, match="outside of the grid"):
            deposit(position, config, nthreads)

    @pytest.mark.parametrize("nthreads", [1, 4])
    def test_out_of_bounds_discard(self, config, nthreads):
        position = np.array([[0.2, 0.2], [1.0, 0.5], [0.5, -0.1], [0.7, 0.4]])
        out = deposit(position, config, nthreads, out_of_bounds="discard")

        np.testing.assert_allclose(out, deposit(position[[0, 3]], config, 1))

    def test_unknown_policy(self, config, position):
        with pytest.raises(ValueError):
            deposit(position, config, 2, out_of_bounds="clamp")

    def test_invalid_threads(self, config, position):
        with pytest.raises(ValueError):
            deposit(position, config, 0)

    def test_wrong_mesh_shape(self, config, position):
        with pytest.raises(ValueError):
            mesh.CIC(np.zeros((3, 3)), position, config, 2)

    def test_wrong_buffers_shape(self, config, position):
        with pytest.raises(ValueError):
            deposit(position, config, 2, buffers=np.zeros((3,) + config.shape))

    def test_non_contiguous_buffers(self, config, position):
        buffers = np.zeros((6,) + config.shape)[::2]
        assert buffers.shape == (3,) + config.shape
        with pytest.raises(ValueError, match="C-contiguous"):
            deposit(position, config, 3, buffers=buffers)
