'''Capture diagnostics, stats and videos of a Game of Life run.
'''
import csv
import sys
import traceback

import numpy as np
import pandas as pd
from PIL import Image

# When exporting a video, each cell becomes a square of this many pixels.
IMAGE_SCALE_FACTOR = 4
MILLISECONDS_PER_FRAME = 100


def _export_csv(log_data, filename):
    with open(filename, 'w', newline='', encoding='ASCII') as file:
        writer = csv.writer(file)
        for row in log_data:
            writer.writerow(row)


def _export_gif(frames, filename):
    images = [Image.fromarray(frame) for frame in frames]
    # Set durations explicitly, since Pillow will drop repeated frames
    # otherwise, and still lifes repeat a lot.
    images[0].save(filename, save_all=True, append_images=images[1:], loop=0,
                   duration=[MILLISECONDS_PER_FRAME] * len(images))


def _origin(error):
    # The innermost frame in the traceback is where the failure happened.
    frames = traceback.extract_tb(error.__traceback__)
    if not frames:
        return 'unknown'
    return f'{frames[-1].filename}:{frames[-1].lineno}'


def _to_image(generation, width):
    # Live cells are drawn black on a white background.
    frame = generation.reshape(-1, width)
    frame = np.where(frame == 0, 255, 0).astype(np.uint8)
    scale = IMAGE_SCALE_FACTOR
    return frame.repeat(scale, 0).repeat(scale, 1)


class Logger:
    '''A class to collect log events and export them to the filesystem.

    The general model here is to construct a Logger object for a run and
    pass it around to any code that needs to log events. Calling a log*
    method records an event. Calling an export* method will dump the
    requested log object(s) to the filesystem.
    '''
    def __init__(self, record_video=False, stream=sys.stderr):
        self.record_video = record_video
        self.stream = stream
        self.diagnostics = [(
            'origin',
            'operation',
            'error',
            'description',
        )]
        self.stats = []
        self.frames = []

    def export_diagnostics(self, filename):
        '''Export a CSV file of all failures recorded by this logger.
        '''
        _export_csv(self.diagnostics, filename)

    def export_stats(self, filename):
        '''Export a CSV file of per-generation population counts.
        '''
        self.population_data().to_csv(filename, index=False)

    def export_video(self, filename):
        '''Export an animated gif of all recorded generations.
        '''
        if self.frames:
            _export_gif(self.frames, filename)

    def population_data(self):
        '''Summarize the run as a table with one row per generation.
        '''
        return pd.DataFrame(self.stats, columns=['Generation', 'Population'])

    def log_error(self, operation, error):
        '''Log a failed device operation.

        Parameters
        ----------
        operation : str
            A description of what was being attempted.
        error : Exception
            The failure. Its chained cause, if any, identifies the underlying
            driver error.
        '''
        cause = error.__cause__ or error
        row = (
            _origin(cause),
            operation,
            type(cause).__name__,
            str(error),
        )
        self.diagnostics.append(row)
        print('{}: {} failed with {}: {}'.format(*row), file=self.stream)

    def log_fatal(self, operation, error):
        '''Log a failure there is no recovering from, then exit.
        '''
        self.log_error(operation, error)
        raise SystemExit(1)

    def log_generation(self, generation_index, generation, width):
        '''Log one generation of a run, and record it if making a video.
        '''
        self.stats.append(
            (generation_index, int(np.count_nonzero(generation))))
        if self.record_video:
            self.frames.append(_to_image(generation, width))
