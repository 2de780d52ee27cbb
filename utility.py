"""Miscellaneous utility functions for this project."""
import numpy as np

import kernel


def make_seed(width, height, probability=0.5, rng=None):
    """Make a random first generation.

    Parameters
    ----------
    width : int
        Number of cells in each row.
    height : int
        Number of rows.
    probability : float, optional
        The chance that any given cell starts out alive.
    rng : np.random.Generator, optional
        Source of randomness, for repeatable seeds.

    Returns
    -------
    np.ndarray of np.uint8
        width * height values of kernel.ALIVE or kernel.DEAD, row-major.
    """
    if not 0 <= probability <= 1:
        raise ValueError('probability must be between 0 and 1!')
    if rng is None:
        rng = np.random.default_rng()
    return rng.choice(
        np.array([kernel.ALIVE, kernel.DEAD], dtype=np.uint8),
        width * height, p=[probability, 1 - probability])


def render_text(generation, width, alive='#', dead='.'):
    """Draw a generation as text, one line per row of the world."""
    generation = np.asarray(generation).reshape(-1)
    rows = []
    for start in range(0, generation.size, width):
        row = generation[start:start + width]
        rows.append(''.join(alive if cell else dead for cell in row))
    return '\n'.join(rows)
