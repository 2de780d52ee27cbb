"""Run a Game of Life simulation from the command line.

Examples
--------
Step a random 64x64 world 100 times on the GPU and save a video:

    python main.py --width 64 --height 64 --generations 100 --video life.gif

Watch a small world in the terminal without a GPU:

    GOL_BACKEND=host python main.py --width 32 --height 16 --show
"""

import argparse
import time

import numpy as np
import tqdm

from config import Backend, SimulationConfig, default_backend
import debug
import gol_simulation
from log import Logger
import utility

# Updating the CLI is relatively slow, so don't update the progress bar more
# often than once every second.
PROGRESS_UPDATE_INTERVAL = 1


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--width', default=64, type=int)
    parser.add_argument('--height', default=64, type=int)
    parser.add_argument('--tile-width', default=16, type=int)
    parser.add_argument('--tile-height', default=16, type=int)
    parser.add_argument('--generations', default=100, type=int)
    parser.add_argument('--density', default=0.5, type=float,
                        help='chance that a cell starts out alive')
    parser.add_argument('--random-seed', default=None, type=int)
    parser.add_argument('--backend', default=None,
                        choices=[backend.value for backend in Backend])
    parser.add_argument('--show', action='store_true',
                        help='print every generation as text')
    parser.add_argument('--delay', default=0.0, type=float,
                        help='seconds to pause after printing a generation')
    parser.add_argument('--plot', action='store_true',
                        help='show all generations with matplotlib')
    parser.add_argument('--video', help='export an animated gif here')
    parser.add_argument('--stats', help='export population CSV here')
    parser.add_argument('--diagnostics', help='export failures CSV here')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    backend = Backend(args.backend) if args.backend else default_backend()
    config = SimulationConfig(
        args.width, args.height, args.tile_width, args.tile_height, backend)
    logger = Logger(record_video=args.video is not None)
    seed = utility.make_seed(
        config.width, config.height, args.density,
        np.random.default_rng(args.random_seed))

    generations = []
    progress = tqdm.tqdm(
        total=args.generations, mininterval=PROGRESS_UPDATE_INTERVAL,
        disable=args.show)
    for index, generation in enumerate(
            gol_simulation.simulate(seed, config, args.generations, logger)):
        if args.show:
            print(f'Generation {index}:')
            print(utility.render_text(generation, config.width))
            print()
            time.sleep(args.delay)
        if args.plot:
            generations.append(generation)
        if index > 0:
            progress.update()
    progress.close()

    if args.plot:
        debug.show_generations(generations, config.width)
    if args.video:
        logger.export_video(args.video)
    if args.stats:
        logger.export_stats(args.stats)
    if args.diagnostics:
        logger.export_diagnostics(args.diagnostics)

    # simulate stops early if a step fails, which shows up as a short run.
    completed = len(logger.stats) - 1
    if completed < args.generations:
        print(f'Stopped after {completed} of {args.generations} generations.')
        return 1
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
