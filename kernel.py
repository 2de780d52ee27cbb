"""Kernels for stepping a toroidal Game of Life world one generation.

This code is the inner loop of the project. The CUDA version is transpiled
into C on demand using Numba, then executes with one thread per tile cell on
an NVidia GPU. The host version runs the exact same protocol serially, so the
rule logic can be tested and used without a GPU. Both share the leaf
functions below (wrap_index, count_neighbors, next_state), which are written
once in Python and compiled for each target.
"""

import functools
import math

import numba
from numba import cuda, uint8
import numpy as np


# Memory model for the CUDA step kernel:
#
#    block (0, 0)          block (1, 0)
# +-+-----------+-+     +-+-----------+-+
# |h|  halo     |h|     |h|  halo     |h|
# +-+-----------+-+     +-+-----------+-+
# | |           | |     | |           | |
# |h| TW x TH   |h|     |h| TW x TH   |h|  ...
# | | interior  | |     | | interior  | |
# +-+-----------+-+     +-+-----------+-+
# |h|  halo     |h|     |h|  halo     |h|
# +-+-----------+-+     +-+-----------+-+
#
# The world is covered by blocks whose interiors are TW x TH cells. Each block
# has (TW + 2) x (TH + 2) threads, one for every cell of its tile, so the
# interiors of neighboring blocks abut while their halos overlap. Every thread
# loads one cell into shared memory, then only interior threads compute and
# write a result. Neighbors are read from shared memory instead of global
# memory, and the halo means no thread ever reads another block's tile.

# State values for cells in the world.
ALIVE = 1
DEAD = 0


@numba.njit
def wrap_index(x, y, width, height):
    """Find the row-major index of (x, y) on a toroidal world.

    Each axis wraps independently, so -1 maps to the last column / row and
    width / height map to the first. Uses floor modulo, so coordinates farther
    out of range also fold back into the world.
    """
    return (y % height) * width + (x % width)


@numba.njit
def count_neighbors(tile, local_x, local_y):
    """Sum the eight cells around (local_x, local_y) in a loaded tile."""
    return (tile[local_y - 1, local_x - 1] +
            tile[local_y - 1, local_x] +
            tile[local_y - 1, local_x + 1] +
            tile[local_y, local_x - 1] +
            tile[local_y, local_x + 1] +
            tile[local_y + 1, local_x - 1] +
            tile[local_y + 1, local_x] +
            tile[local_y + 1, local_x + 1])


@numba.njit
def next_state(alive, neighbors):
    """Compute the next state of a cell from its state and neighbor count.

    A live cell survives with two neighbors, and any cell (alive or dead) is
    alive in the next generation with exactly three.
    """
    if (alive == ALIVE and neighbors == 2) or neighbors == 3:
        return ALIVE
    return DEAD


# Device-side copies of the leaf functions above, for use inside the CUDA
# kernel. Numba compiles these lazily, the first time a kernel calls them.
_device_wrap_index = cuda.jit(device=True)(wrap_index.py_func)
_device_count_neighbors = cuda.jit(device=True)(count_neighbors.py_func)
_device_next_state = cuda.jit(device=True)(next_state.py_func)


def launch_geometry(config):
    """Compute the block and thread layout for stepping a world.

    Parameters
    ----------
    config : SimulationConfig
        The dimensions of the world and of each tile.

    Returns
    -------
    tuple of (int, int), (int, int)
        The number of blocks along (x, y), then the number of threads per block
        along (x, y). Each block has one thread per tile cell, halo included.
    """
    blocks = (math.ceil(config.width / config.tile_width),
              math.ceil(config.height / config.tile_height))
    threads = (config.tile_width + 2, config.tile_height + 2)
    return blocks, threads


@functools.lru_cache(maxsize=None)
def make_step_kernel(tile_width, tile_height):
    """Build the CUDA step kernel for one tile size.

    Shared memory arrays must have a shape known at compile time, so the tile
    dimensions are baked into the kernel as constants. Kernels are cached, so
    every simulation with the same tile size shares one compiled kernel.
    """
    tile_shape = (tile_height + 2, tile_width + 2)

    @cuda.jit
    def step_kernel(current, following, width, height):
        # Each invocation of this function owns one cell of the tile at
        # (local_x, local_y), which corresponds to the world cell (x, y). Halo
        # threads have coordinates one step outside their block's interior.
        local_x = cuda.threadIdx.x
        local_y = cuda.threadIdx.y
        x = cuda.blockIdx.x * tile_width + local_x - 1
        y = cuda.blockIdx.y * tile_height + local_y - 1

        # Gather phase: every thread, halo included, loads its wrapped cell.
        tile = cuda.shared.array(tile_shape, uint8)
        tile[local_y, local_x] = current[
            _device_wrap_index(x, y, width, height)]

        # Make sure the whole tile is loaded before anyone reads from it.
        cuda.syncthreads()

        # Compute phase, for interior threads inside the world only. Blocks on
        # the right and bottom edges may hang past the end of the world.
        if x >= width or y >= height:
            return
        if local_x == 0 or local_x == tile_width + 1:
            return
        if local_y == 0 or local_y == tile_height + 1:
            return
        neighbors = _device_count_neighbors(tile, local_x, local_y)
        following[_device_wrap_index(x, y, width, height)] = (
            _device_next_state(tile[local_y, local_x], neighbors))

    return step_kernel


def launch_step(current, following, config, stream=0):
    """Queue one generation step on the GPU.

    This only issues the kernel. It returns before the kernel runs, and the
    result in following is only safe to read once stream has been
    synchronized.

    Parameters
    ----------
    current : DeviceNDArray of np.uint8
        The current generation, read only.
    following : DeviceNDArray of np.uint8
        Where to write the next generation. Must not alias current.
    config : SimulationConfig
        The dimensions of the world and of each tile.
    stream : numba.cuda.cudadrv.driver.Stream, optional
        The stream to issue the kernel on. Defaults to the default stream.
    """
    blocks, threads = launch_geometry(config)
    step_kernel = make_step_kernel(config.tile_width, config.tile_height)
    step_kernel[blocks, threads, stream](
        current, following, config.width, config.height)


@numba.njit
def gather_tile(current, tile, block_x, block_y, width, height):
    """Load one block's tile (interior plus halo) from current.

    The tile's shape determines the tile size, so a tile of shape
    (TH + 2, TW + 2) is filled for the block at (block_x, block_y).
    """
    tile_height = tile.shape[0] - 2
    tile_width = tile.shape[1] - 2
    origin_x = block_x * tile_width - 1
    origin_y = block_y * tile_height - 1
    for local_y in range(tile.shape[0]):
        for local_x in range(tile.shape[1]):
            tile[local_y, local_x] = current[wrap_index(
                origin_x + local_x, origin_y + local_y, width, height)]


@numba.njit
def _step_tiled(current, following, width, height, tile_width, tile_height):
    tile = np.empty((tile_height + 2, tile_width + 2), np.uint8)
    blocks_x = (width + tile_width - 1) // tile_width
    blocks_y = (height + tile_height - 1) // tile_height
    for block_y in range(blocks_y):
        for block_x in range(blocks_x):
            # The whole tile is loaded before computing any cell, standing in
            # for the barrier in the CUDA kernel.
            gather_tile(current, tile, block_x, block_y, width, height)
            for local_y in range(1, tile_height + 1):
                y = block_y * tile_height + local_y - 1
                if y >= height:
                    break
                for local_x in range(1, tile_width + 1):
                    x = block_x * tile_width + local_x - 1
                    if x >= width:
                        break
                    neighbors = count_neighbors(tile, local_x, local_y)
                    following[wrap_index(x, y, width, height)] = next_state(
                        tile[local_y, local_x], neighbors)


def step_tiled(current, following, config):
    """Compute the next generation on the host, one tile at a time.

    This runs the same gather / compute protocol as the CUDA kernel, block by
    block, and produces identical results.

    Parameters
    ----------
    current : np.ndarray of np.uint8
        The current generation, read only.
    following : np.ndarray of np.uint8
        Where to write the next generation. Must not alias current.
    config : SimulationConfig
        The dimensions of the world and of each tile.
    """
    _step_tiled(current, following, config.width, config.height,
                config.tile_width, config.tile_height)


@numba.njit
def step_reference(current, following, width, height):
    """Compute the next generation cell by cell, without tiles.

    This is the plain, obviously correct version of the rule, used to check
    the tiled implementations against.
    """
    for y in range(height):
        for x in range(width):
            neighbors = 0
            for y_off in (-1, 0, 1):
                for x_off in (-1, 0, 1):
                    if x_off == 0 and y_off == 0:
                        continue
                    neighbors += current[
                        wrap_index(x + x_off, y + y_off, width, height)]
            following[y * width + x] = next_state(
                current[y * width + x], neighbors)
