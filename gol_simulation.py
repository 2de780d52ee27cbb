"""Classes and functions for running a Game of Life simulation.

This module holds the GameOfLifeSimulation class and a few utility functions.
It provides the interface between Python code working with whole generations
as numpy arrays and the kernels that step a world in parallel on an NVidia GPU
(or, without one, on the host).
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from arena import AllocationError, LaunchError, TransferError, make_arena
from log import Logger


class StepStatus(Enum):
    '''The outcome of one call to advance_generation.'''
    SUCCESS = 1
    # The step kernel could not be issued or failed while running.
    LAUNCH_FAILURE = 2
    # The result could not be copied back from the generation buffer.
    TRANSFER_FAILURE = 3


class SimulationState(Enum):
    UNINITIALIZED = 1
    SEEDED = 2
    STEPPED = 3
    DESTROYED = 4


@dataclass
class StepResult:
    '''The status of a step, and the new generation if it succeeded.'''
    status: StepStatus
    generation: np.ndarray = None

    @property
    def ok(self):
        return self.status == StepStatus.SUCCESS


class GameOfLifeSimulation:
    """A single Game of Life world, stepped one generation at a time.

    The purpose of this class is to own the memory and stream used to step a
    world and to sequence operations on them correctly. It keeps two
    generation buffers, one holding the current generation and the other
    receiving the next one. After every successful step their roles swap, so
    generations are never computed in place.

    Usage is strictly ordered: call initialize once, then advance_generation
    as many times as you like, then teardown once.
    """
    def __init__(self, config, arena=None, logger=None):
        self.config = config
        self.arena = arena or make_arena(config.backend)
        self.logger = logger or Logger()
        self.state = SimulationState.UNINITIALIZED
        self.generation_count = 0
        self._buffers = None
        self._host_generation = None
        self._stream = None
        # Index into self._buffers of the buffer holding the current
        # generation. The other one receives the next generation.
        self._current = 0
        # A copy of the first generation, kept until the first step succeeds.
        self._seed = None
        self._resend_seed = False

    def initialize(self, seed):
        """Allocate memory and start uploading the first generation.

        The upload is asynchronous. It is guaranteed to finish before the
        first step runs, since both are issued to the same stream.

        Parameters
        ----------
        seed : sequence of int
            The first generation, width * height values of 0 or 1 in row-major
            order. A 2D array of shape (height, width) is also accepted.

        Returns
        -------
        GameOfLifeSimulation
            This simulation, now ready to step.
        """
        assert self.state == SimulationState.UNINITIALIZED, (
            'A simulation can only be initialized once.')
        seed = np.asarray(seed)
        if seed.size != self.config.size:
            raise ValueError(
                f'seed must have {self.config.size} cells, not {seed.size}!')
        if np.any((seed != 0) & (seed != 1)):
            raise ValueError('seed values must be 0 or 1!')

        try:
            self._buffers, self._host_generation, self._stream = (
                self.arena.allocate(self.config.size))
        except AllocationError as error:
            self.logger.log_fatal('allocate', error)
        self._seed = np.array(seed, dtype=np.uint8).reshape(-1)
        self._current = 0
        try:
            self._upload_seed()
        except TransferError as error:
            # Retried at the start of the next step.
            self.logger.log_error('transfer', error)
            self._resend_seed = True
        self.state = SimulationState.SEEDED
        return self

    def _upload_seed(self):
        # Stage the seed in the host array (which may be pinned memory) so
        # the caller's data is never read asynchronously.
        self._host_generation[:] = self._seed
        self.arena.upload(
            self._stream, self._host_generation, self._buffers[self._current])

    def advance_generation(self):
        """Compute the next generation and return a copy of it.

        This issues the step and the download of its result on the stream,
        then waits for the stream before touching the result. If anything
        fails, the failure is logged, the buffers keep their roles, and the
        caller gets a status saying what went wrong. Until a step succeeds,
        the seed is uploaded again before each retry, in case it was the
        upload that failed.

        Returns
        -------
        StepResult
            On success, holds the new generation as a 1D np.ndarray of
            np.uint8, which belongs to the caller.
        """
        assert self.state in (
            SimulationState.SEEDED, SimulationState.STEPPED), (
                'Call initialize before advance_generation.')
        current = self._buffers[self._current]
        following = self._buffers[1 - self._current]
        try:
            if self._resend_seed:
                self._upload_seed()
            self.arena.launch(self._stream, current, following, self.config)
            self.arena.download(self._stream, following, self._host_generation)
            self._stream.join()
        except LaunchError as error:
            self._step_failed()
            self.logger.log_error('launch', error)
            return StepResult(StepStatus.LAUNCH_FAILURE)
        except TransferError as error:
            self._step_failed()
            self.logger.log_error('transfer', error)
            return StepResult(StepStatus.TRANSFER_FAILURE)
        self._seed = None
        self._resend_seed = False
        self._current = 1 - self._current
        self.generation_count += 1
        self.state = SimulationState.STEPPED
        return StepResult(StepStatus.SUCCESS, self._host_generation.copy())

    def _step_failed(self):
        # Nothing is known about the stream's earlier work until a step
        # succeeds, so the seed upload may be the operation that failed.
        if self._seed is not None:
            self._resend_seed = True

    def teardown(self):
        """Release both buffers and the stream. Call exactly once."""
        assert self.state != SimulationState.DESTROYED, (
            'teardown was already called on this simulation.')
        if self._stream is not None:
            self._stream.close()
        # Numba frees device arrays when they are garbage collected, so
        # dropping these references releases both generation buffers.
        self._buffers = None
        self._seed = None
        self._host_generation = None
        self._stream = None
        self.state = SimulationState.DESTROYED


def simulate(seed, config, num_generations, logger=None, arena=None):
    """Run a simulation for num_generations steps, yielding each generation.

    The seed itself is yielded first, so this produces up to
    num_generations + 1 generations. If a step fails, the failure is logged
    and the simulation stops early.

    Parameters
    ----------
    seed : sequence of int
        The first generation.
    config : SimulationConfig
        The dimensions of the world and of each tile.
    num_generations : int
        How many steps to run.
    logger : Logger, optional
        Where to log failures and generations.
    """
    logger = logger or Logger()
    simulation = GameOfLifeSimulation(config, arena, logger)
    simulation.initialize(seed)
    try:
        generation = np.asarray(seed, dtype=np.uint8).reshape(-1)
        logger.log_generation(0, generation, config.width)
        yield generation
        for step in range(1, num_generations + 1):
            result = simulation.advance_generation()
            if not result.ok:
                return
            logger.log_generation(step, result.generation, config.width)
            yield result.generation
    finally:
        simulation.teardown()
