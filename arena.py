'''Managed memory and execution streams for stepping Game of Life worlds.

In the CUDA programming model, the data a kernel works on lives in device
memory, and the host must explicitly copy data to and from the device. Those
copies, like kernel launches, are queued on a stream and run asynchronously,
so the host must wait for the stream before trusting anything it copied back.

This module hides that model behind a small interface with two backends. An
arena allocates generation buffers and streams, and issues three kinds of
operations onto a stream: upload (host to buffer), launch (one generation
step from one buffer into another), and download (buffer to host). The
DeviceArena does this with real CUDA device arrays and streams. The HostArena
keeps buffers in ordinary numpy arrays and runs operations in order on a
single worker thread, which behaves the same way without requiring a GPU.

In both cases, nothing submitted to a stream is guaranteed to have happened
until stream.join() returns.
'''

from concurrent.futures import ThreadPoolExecutor

from numba import cuda
import numpy as np

from config import Backend
import kernel


class AllocationError(Exception):
    '''Buffers or streams could not be created. There is no recovering.'''


class StepError(Exception):
    '''An operation submitted to a stream failed.'''


class LaunchError(StepError):
    '''A generation step could not be issued or failed while running.'''


class TransferError(StepError):
    '''A copy between host memory and a buffer failed.'''


def _run_guarded(operation, args, error):
    # Runs on the stream's worker thread. Failures are rewrapped as the error
    # type the operation was submitted with, so join can report them.
    try:
        return operation(*args)
    except StepError:
        raise
    except Exception as cause:
        raise error(f'{operation.__name__}: {cause}') from cause


class HostStream:
    '''An ordered queue of operations run on a single background thread.

    Operations run in the order they were submitted, and submitting never
    blocks. Use join to wait for everything submitted so far.
    '''
    def __init__(self):
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix='host-stream')
        self._pending = []

    def submit(self, operation, *args, error=StepError):
        '''Queue operation(*args), reporting failures as error.

        Returns
        -------
        concurrent.futures.Future
            Resolves when this operation (and everything before it) is done.
        '''
        future = self._executor.submit(_run_guarded, operation, args, error)
        self._pending.append(future)
        return future

    def join(self):
        '''Wait for all pending operations, raising the first failure.'''
        pending, self._pending = self._pending, []
        first_error = None
        for future in pending:
            error = future.exception()
            if error is not None and first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error

    def close(self):
        self._executor.shutdown(wait=True)


class DeviceStream:
    '''A CUDA stream, with an event recorded after every operation.

    Operations are issued immediately, and the GPU runs them in order in the
    background. Errors detected when issuing are raised by submit. Errors that
    happen while running only surface on the host when something waits on the
    stream, so join waits on each operation's event in turn, which attributes
    the failure to the first operation that did not complete.
    '''
    def __init__(self):
        self.cuda_stream = cuda.stream()
        self._pending = []

    def submit(self, operation, *args, error=StepError):
        '''Issue operation(*args, stream=...), reporting failures as error.'''
        try:
            operation(*args, stream=self.cuda_stream)
            event = cuda.event()
            event.record(self.cuda_stream)
        except Exception as cause:
            raise error(f'{operation.__name__}: {cause}') from cause
        self._pending.append((operation.__name__, event, error))
        return event

    def join(self):
        '''Wait for all issued operations, raising the first failure.'''
        pending, self._pending = self._pending, []
        for name, event, error in pending:
            try:
                event.synchronize()
            except Exception as cause:
                raise error(f'{name}: {cause}') from cause

    def close(self):
        # Numba frees streams when they are garbage collected, so all that's
        # left is to make sure nothing is still in flight.
        self.cuda_stream.synchronize()
        self.cuda_stream = None


class Arena:
    '''Base class for the two backends below.

    Subclasses provide make_buffer, make_host_array and make_stream, plus the
    upload, launch and download operations.
    '''
    name = None

    def allocate(self, size):
        '''Allocate everything one simulation needs.

        Parameters
        ----------
        size : int
            The number of cells in one generation.

        Returns
        -------
        list, array, stream
            Two generation buffers, a host array to download results into,
            and a stream to issue operations on.

        Raises
        ------
        AllocationError
            If any of the above could not be created.
        '''
        try:
            buffers = [self.make_buffer(size), self.make_buffer(size)]
            host_array = self.make_host_array(size)
            stream = self.make_stream()
        except Exception as cause:
            raise AllocationError(
                f'{self.name} allocation failed: {cause}') from cause
        return buffers, host_array, stream


class HostArena(Arena):
    '''Generation buffers in host memory, stepped by kernel.step_tiled.'''
    name = 'host'

    def make_stream(self):
        return HostStream()

    def make_buffer(self, size):
        return np.zeros(size, np.uint8)

    def make_host_array(self, size):
        return np.zeros(size, np.uint8)

    def upload(self, stream, source, buffer):
        stream.submit(np.copyto, buffer, source, error=TransferError)

    def launch(self, stream, current, following, config):
        stream.submit(
            kernel.step_tiled, current, following, config, error=LaunchError)

    def download(self, stream, buffer, destination):
        stream.submit(np.copyto, destination, buffer, error=TransferError)


class DeviceArena(Arena):
    '''Generation buffers in GPU memory, stepped by the CUDA kernel.

    Host arrays are allocated in pinned memory, since the GPU can only copy
    to and from host memory asynchronously when it is page locked.
    '''
    name = 'device'

    def make_stream(self):
        return DeviceStream()

    def make_buffer(self, size):
        return cuda.device_array(size, np.uint8)

    def make_host_array(self, size):
        return cuda.pinned_array(size, np.uint8)

    def upload(self, stream, source, buffer):
        stream.submit(buffer.copy_to_device, source, error=TransferError)

    def launch(self, stream, current, following, config):
        stream.submit(
            kernel.launch_step, current, following, config, error=LaunchError)

    def download(self, stream, buffer, destination):
        stream.submit(buffer.copy_to_host, destination, error=TransferError)


def make_arena(backend):
    '''Construct the arena for a config.Backend value.'''
    if backend == Backend.DEVICE:
        return DeviceArena()
    return HostArena()
