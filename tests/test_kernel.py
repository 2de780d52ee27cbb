"""Tests for kernel.py

These tests check the step rule and its three implementations (the scalar
reference, the serial tiled version, and the CUDA kernel) against each other
and against a few well known Game of Life patterns.
"""

import unittest

from numba import cuda
import numpy as np

from config import Backend, SimulationConfig
import kernel

# A glider, heading down and to the right. After four steps, the same shape
# reappears one cell further along on each axis.
GLIDER = np.array([
    [0, 1, 0],
    [0, 0, 1],
    [1, 1, 1]], dtype=np.uint8)


def make_world(width, height, pattern=None, at=(0, 0)):
    """Make a flat world with pattern placed with its top left at (x, y).

    The pattern wraps around the edges of the world if it doesn't fit.
    """
    world = np.zeros((height, width), dtype=np.uint8)
    if pattern is not None:
        rows, cols = pattern.shape
        world[:rows, :cols] = pattern
        world = np.roll(world, (at[1], at[0]), axis=(0, 1))
    return world.reshape(-1)


def run_reference(world, width, height, steps):
    """Step world with kernel.step_reference and return the result."""
    current = world.copy()
    following = np.empty_like(current)
    for _ in range(steps):
        kernel.step_reference(current, following, width, height)
        current, following = following, current
    return current


def run_tiled(world, config, steps):
    """Step world with kernel.step_tiled and return the result."""
    current = world.copy()
    following = np.empty_like(current)
    for _ in range(steps):
        kernel.step_tiled(current, following, config)
        current, following = following, current
    return current


def run_cuda(world, config, steps):
    """Step world with the CUDA kernel and return the result."""
    current = cuda.to_device(world)
    following = cuda.device_array_like(current)
    for _ in range(steps):
        kernel.launch_step(current, following, config)
        current, following = following, current
    cuda.synchronize()
    return current.copy_to_host()


class TestWrapIndex(unittest.TestCase):
    """Indices wrap around each edge of the world independently."""
    def test_in_bounds(self):
        self.assertEqual(kernel.wrap_index(0, 0, 5, 4), 0)
        self.assertEqual(kernel.wrap_index(3, 2, 5, 4), 13)
        self.assertEqual(kernel.wrap_index(4, 3, 5, 4), 19)

    def test_one_past_each_edge(self):
        self.assertEqual(kernel.wrap_index(-1, 0, 5, 4), 4)
        self.assertEqual(kernel.wrap_index(5, 0, 5, 4), 0)
        self.assertEqual(kernel.wrap_index(0, -1, 5, 4), 15)
        self.assertEqual(kernel.wrap_index(0, 4, 5, 4), 0)
        self.assertEqual(kernel.wrap_index(-1, -1, 5, 4), 19)
        self.assertEqual(kernel.wrap_index(5, 4, 5, 4), 0)

    def test_corners_are_adjacent(self):
        """(0, 0) and (width - 1, height - 1) are diagonal neighbors."""
        for width, height in [(1, 1), (1, 7), (3, 3), (8, 5), (33, 17)]:
            last = width * height - 1
            self.assertEqual(
                kernel.wrap_index(-1, -1, width, height), last)
            self.assertEqual(
                kernel.wrap_index(width, height, width, height), 0)


class TestRule(unittest.TestCase):
    """The survive-on-2, birth-or-survive-on-3 rule."""
    def test_live_cells(self):
        expected = {0: 0, 1: 0, 2: 1, 3: 1, 4: 0, 5: 0, 6: 0, 7: 0, 8: 0}
        for neighbors, state in expected.items():
            self.assertEqual(
                kernel.next_state(kernel.ALIVE, neighbors), state, neighbors)

    def test_dead_cells(self):
        """Dead cells are born with exactly three neighbors, and only then."""
        expected = {0: 0, 1: 0, 2: 0, 3: 1, 4: 0, 5: 0, 6: 0, 7: 0, 8: 0}
        for neighbors, state in expected.items():
            self.assertEqual(
                kernel.next_state(kernel.DEAD, neighbors), state, neighbors)

    def test_count_neighbors_skips_center(self):
        tile = np.ones((3, 3), dtype=np.uint8)
        self.assertEqual(kernel.count_neighbors(tile, 1, 1), 8)
        tile[1, 1] = 0
        self.assertEqual(kernel.count_neighbors(tile, 1, 1), 8)
        tile[:] = 0
        tile[0, 2] = tile[2, 0] = 1
        self.assertEqual(kernel.count_neighbors(tile, 1, 1), 2)


class TestGatherTile(unittest.TestCase):
    def test_halo_wraps(self):
        """The halo of a corner block comes from the opposite edges."""
        width, height = 6, 5
        world = np.arange(width * height, dtype=np.uint8)
        tile = np.zeros((4, 4), dtype=np.uint8)
        kernel.gather_tile(world, tile, 0, 0, width, height)
        grid = world.reshape(height, width)
        # Top left corner of the halo is the bottom right cell of the world.
        self.assertEqual(tile[0, 0], grid[-1, -1])
        # The rest of the top halo row is the bottom row of the world.
        np.testing.assert_array_equal(tile[0, 1:], grid[-1, 0:3])
        # The left halo column is the rightmost column of the world.
        np.testing.assert_array_equal(tile[1:, 0], grid[0:3, -1])
        # The interior is the top left corner of the world.
        np.testing.assert_array_equal(tile[1:3, 1:3], grid[0:2, 0:2])

    def test_partial_block_wraps(self):
        """A block hanging past the edge of the world reads wrapped cells."""
        width, height = 5, 5
        world = np.arange(width * height, dtype=np.uint8)
        tile = np.zeros((5, 5), dtype=np.uint8)
        # Block (1, 0) with 3x3 interiors covers x = 3..5, halo x = 2..6.
        kernel.gather_tile(world, tile, 1, 0, width, height)
        grid = world.reshape(height, width)
        np.testing.assert_array_equal(
            tile[1], [grid[0, 2], grid[0, 3], grid[0, 4], grid[0, 0],
                      grid[0, 1]])


class TestLaunchGeometry(unittest.TestCase):
    def test_exact_fit(self):
        config = SimulationConfig(64, 32, 16, 8, Backend.HOST)
        self.assertEqual(kernel.launch_geometry(config), ((4, 4), (18, 10)))

    def test_partial_blocks(self):
        config = SimulationConfig(65, 9, 16, 8, Backend.HOST)
        self.assertEqual(kernel.launch_geometry(config), ((5, 2), (18, 10)))

    def test_world_smaller_than_tile(self):
        config = SimulationConfig(3, 2, 16, 16, Backend.HOST)
        self.assertEqual(kernel.launch_geometry(config), ((1, 1), (18, 18)))

    def test_kernels_are_cached_per_tile_size(self):
        self.assertIs(kernel.make_step_kernel(4, 4),
                      kernel.make_step_kernel(4, 4))
        self.assertIsNot(kernel.make_step_kernel(4, 4),
                         kernel.make_step_kernel(4, 3))


class TestReferenceStep(unittest.TestCase):
    """Well known patterns behave as expected in the scalar reference."""
    def test_empty_world(self):
        world = make_world(7, 6)
        np.testing.assert_array_equal(run_reference(world, 7, 6, 3), world)

    def test_block(self):
        world = make_world(8, 8, np.ones((2, 2), dtype=np.uint8), (3, 3))
        np.testing.assert_array_equal(run_reference(world, 8, 8, 1), world)

    def test_blinker(self):
        world = make_world(5, 5, np.ones((1, 3), dtype=np.uint8), (1, 2))
        rotated = make_world(5, 5, np.ones((3, 1), dtype=np.uint8), (2, 1))
        np.testing.assert_array_equal(run_reference(world, 5, 5, 1), rotated)
        np.testing.assert_array_equal(run_reference(world, 5, 5, 2), world)

    def test_glider(self):
        world = make_world(8, 8, GLIDER, (2, 2))
        moved = make_world(8, 8, GLIDER, (3, 3))
        np.testing.assert_array_equal(run_reference(world, 8, 8, 4), moved)

    def test_corner_birth(self):
        """A cell is born from three neighbors across both seams."""
        width, height = 5, 4
        world = np.zeros((height, width), dtype=np.uint8)
        world[0, 0] = world[0, width - 1] = world[height - 1, 0] = 1
        result = run_reference(world.reshape(-1), width, height, 1)
        self.assertEqual(result.reshape(height, width)[-1, -1], kernel.ALIVE)


class TestTiledStep(unittest.TestCase):
    """The serial tiled step matches the scalar reference."""
    def setUp(self):
        self.rng = np.random.default_rng(42)

    def test_matches_reference(self):
        # Worlds smaller than, equal to, and larger than a 4x4 tile, with and
        # without partial blocks on the edges.
        for width, height in [(3, 2), (4, 4), (8, 8), (9, 5), (17, 13)]:
            world = self.rng.integers(0, 2, width * height, dtype=np.uint8)
            config = SimulationConfig(width, height, 4, 4, Backend.HOST)
            np.testing.assert_array_equal(
                run_tiled(world, config, 6),
                run_reference(world, width, height, 6),
                f'{width}x{height}')

    def test_non_square_tiles(self):
        world = self.rng.integers(0, 2, 20 * 11, dtype=np.uint8)
        config = SimulationConfig(20, 11, 7, 3, Backend.HOST)
        np.testing.assert_array_equal(
            run_tiled(world, config, 5), run_reference(world, 20, 11, 5))

    def test_glider_crosses_tiles_and_seams(self):
        """A glider wraps all the way around a world made of several tiles."""
        config = SimulationConfig(8, 8, 3, 3, Backend.HOST)
        world = make_world(8, 8, GLIDER, (4, 4))
        # 32 steps moves the glider 8 cells diagonally, back to the start.
        np.testing.assert_array_equal(run_tiled(world, config, 32), world)

    def test_values_stay_binary(self):
        world = self.rng.integers(0, 2, 12 * 12, dtype=np.uint8)
        config = SimulationConfig(12, 12, 5, 5, Backend.HOST)
        result = run_tiled(world, config, 3)
        self.assertTrue(np.all((result == 0) | (result == 1)))


class TestCudaStep(unittest.TestCase):
    """The CUDA kernel matches the scalar reference.

    Under the CUDA simulator every thread is a real Python thread, so these
    tests use small worlds and tiles.
    """
    def setUp(self):
        self.rng = np.random.default_rng(7)

    def test_matches_reference(self):
        for width, height in [(3, 3), (4, 4), (10, 7)]:
            world = self.rng.integers(0, 2, width * height, dtype=np.uint8)
            config = SimulationConfig(width, height, 4, 4, Backend.DEVICE)
            np.testing.assert_array_equal(
                run_cuda(world, config, 3),
                run_reference(world, width, height, 3),
                f'{width}x{height}')

    def test_glider_across_seams(self):
        """A glider moves from one tile into the wrapped corner tile."""
        config = SimulationConfig(8, 8, 4, 4, Backend.DEVICE)
        world = make_world(8, 8, GLIDER, (5, 5))
        moved = make_world(8, 8, GLIDER, (6, 6))
        np.testing.assert_array_equal(run_cuda(world, config, 4), moved)

    def test_empty_world(self):
        config = SimulationConfig(6, 5, 4, 4, Backend.DEVICE)
        world = make_world(6, 5)
        np.testing.assert_array_equal(run_cuda(world, config, 2), world)


if __name__ == '__main__':
    unittest.main()
