"""Test suite for the Game of Life stepper.

Numba reads its configuration when it is first imported, so the CUDA simulator
must be enabled before any test module imports the code under test. This lets
the CUDA kernels run (slowly, as ordinary Python threads) on machines without
an NVidia GPU. Set NUMBA_ENABLE_CUDASIM=0 to run them on real hardware.
"""

import os

os.environ.setdefault('NUMBA_ENABLE_CUDASIM', '1')
