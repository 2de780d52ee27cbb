'''Configuration objects for Game of Life simulations.

Grid and tile dimensions are fixed for the lifetime of a simulation, but they
are not global constants. Each GameOfLifeSimulation gets its own
SimulationConfig, which makes it easy to run several independent simulations
(or tests) at different sizes side by side.

To use, construct a SimulationConfig and pass it to the GameOfLifeSimulation
constructor, which will pass it around to all the code that needs it.
'''

import os
from dataclasses import dataclass, field
from enum import Enum

# The maximum number of threads in a single CUDA block on every device this
# project targets. Each block has one thread per tile cell, halo included.
MAX_THREADS_PER_BLOCK = 1024

# Environment variable used to pick a backend when none is given explicitly.
BACKEND_VARIABLE = 'GOL_BACKEND'


class Backend(Enum):
    '''Where the generation buffers live and where the step runs.
    '''
    # CUDA device arrays, stepped by the shared memory kernel.
    DEVICE = 'device'
    # Plain numpy arrays, stepped by the serial tiled implementation.
    HOST = 'host'


def default_backend():
    '''Read the backend to use from the environment, defaulting to DEVICE.

    Machines with broken or missing drivers can set GOL_BACKEND=host to bypass
    the GPU entirely.
    '''
    value = os.environ.get(BACKEND_VARIABLE, Backend.DEVICE.value).lower()
    try:
        return Backend(value)
    except ValueError:
        raise ValueError(
            f'{BACKEND_VARIABLE} must be one of '
            f'{[backend.value for backend in Backend]}, not "{value}"!'
        ) from None


@dataclass(frozen=True)
class SimulationConfig:
    '''The fixed dimensions of one Game of Life run.

    Attributes
    ----------
    width : int
        Number of cells in each row of the world.
    height : int
        Number of rows in the world.
    tile_width : int
        Number of interior cells per compute block along x.
    tile_height : int
        Number of interior cells per compute block along y.
    backend : Backend
        Which arena backend to allocate buffers from.
    '''
    width: int
    height: int
    tile_width: int = 16
    tile_height: int = 16
    backend: Backend = field(default_factory=default_backend)

    def __post_init__(self):
        for name in ('width', 'height', 'tile_width', 'tile_height'):
            value = getattr(self, name)
            # bool is a subclass of int, but True is not a grid size.
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f'{name} must be integer!')
            if value < 1:
                raise ValueError(f'{name} must be positive integer!')
        if not isinstance(self.backend, Backend):
            raise TypeError('backend must be a Backend!')
        if self.threads_per_block > MAX_THREADS_PER_BLOCK:
            raise ValueError(
                f'A {self.tile_width}x{self.tile_height} tile needs '
                f'{self.threads_per_block} threads per block, which exceeds '
                f'the maximum of {MAX_THREADS_PER_BLOCK}!')

    @property
    def size(self):
        '''The number of cells in one generation.'''
        return self.width * self.height

    @property
    def tile_shape(self):
        '''The (rows, cols) shape of a tile, including the halo ring.'''
        return (self.tile_height + 2, self.tile_width + 2)

    @property
    def threads_per_block(self):
        return (self.tile_width + 2) * (self.tile_height + 2)
