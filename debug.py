"""Tools for visualizing generations when something looks wrong."""

import matplotlib.pyplot as plt
import numpy as np


def _show_grid(axis, generation, width, title):
    axis.set_title(title)
    axis.imshow(np.asarray(generation).reshape(-1, width),
                cmap='gray_r', vmin=0, vmax=1)
    axis.tick_params(bottom=False, left=False,
                     labelbottom=False, labelleft=False)


def compare_generations(expected, actual, width,
                        labels=('expected', 'actual')):
    """Draw a side-by-side comparison of two generations.

    The third panel highlights just the cells that differ, which makes it easy
    to spot wrap-around mistakes at the edges of the world or along tile
    boundaries.

    Parameters
    ----------
    expected : np.ndarray
        The generation to compare against.
    actual : np.ndarray
        The generation being checked.
    width : int
        Number of cells in each row of the world.
    labels : tuple of str, optional
        Titles for the expected and actual panels.

    Returns
    -------
    matplotlib.figure.Figure
        The figure, for the caller to show or save.
    """
    fig = plt.figure(f'{labels[0]} vs. {labels[1]}', figsize=(12, 4))
    _show_grid(fig.add_subplot(1, 3, 1), expected, width, labels[0])
    _show_grid(fig.add_subplot(1, 3, 2), actual, width, labels[1])
    delta = np.logical_xor(np.asarray(expected), np.asarray(actual))
    _show_grid(fig.add_subplot(1, 3, 3), delta, width,
               f'{np.count_nonzero(delta)} cells differ')
    return fig


def save_comparison(expected, actual, width, filename, labels=None):
    """Save the figure from compare_generations to filename."""
    fig = compare_generations(
        expected, actual, width, labels or ('expected', 'actual'))
    fig.savefig(filename)
    plt.close(fig)


def show_generations(generations, width, columns=8):
    """Show a sequence of generations as a grid of small images.

    Returns the figure, which stays open until the caller closes it.
    """
    generations = list(generations)
    rows = max(1, -(-len(generations) // columns))
    fig = plt.figure('Generations', figsize=(2 * columns, 2 * rows))
    for index, generation in enumerate(generations):
        _show_grid(fig.add_subplot(rows, columns, index + 1),
                   generation, width, f'{index}')
    plt.show()
    return fig
