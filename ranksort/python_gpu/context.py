"""
Accelerator contexts for the rank sort.

A context owns everything the orchestrator needs from the device side:
the selected device, the streams ("queues"), and the two compiled kernels.
Contexts are created explicitly and handed to ``RankSorter``; there is no
module-level device state, so several independent contexts (or a test
double) can coexist.

Two implementations share one small queue interface:

  CupyContext  : real CUDA device via CuPy, kernels built with RawModule
  NumpyContext : CPU simulation of the same kernels (see kernels.py)

Queue interface
---------------
  upload(host_array)                               -> (buffer, event)
  fill(n, value)                                   -> (buffer, event)
  launch_rank_count(source, counts, n, wait_for)   -> event
  launch_rank_scatter(source, counts, results, n, sentinel, wait_for) -> event
  download(buffer, wait_for)                       -> np.ndarray
  elapsed_ns(event)                                -> int
"""

import logging
import platform
import time
from collections import namedtuple

import numpy as np

from ranksort.python_gpu.errors import (
    BufferAllocationError,
    DeviceUnavailableError,
    KernelBuildError,
    KernelLaunchError,
    RankSortError,
    SynchronizationError,
)
from ranksort.python_gpu.kernels import (
    RANK_COUNT_NAME,
    RANK_SCATTER_NAME,
    count_launch_dims,
    load_kernel_source,
    rank_count_host,
    rank_scatter_host,
    scatter_launch_dims,
)

try:
    import cupy as cp
except ImportError:
    cp = None

logger = logging.getLogger(__name__)

# Completion token for one enqueued command: start/end markers.
# CuPy: cp.cuda.Event pair.  NumPy: perf_counter_ns timestamps.
DeviceEvent = namedtuple('DeviceEvent', ['start', 'end'])


# =====================================================================
# CuPy / CUDA
# =====================================================================

class CupyContext:
    """CUDA context backed by CuPy.

    Uploads go through a dedicated copy stream and kernels through a
    compute stream, so the only thing ordering a kernel after its inputs is
    the explicit ``wait_for`` list turned into ``Stream.wait_event`` calls.

    Parameters
    ----------
    device_id : int, default 0
    """

    name = 'cupy'

    def __init__(self, device_id=0):
        if cp is None:
            raise DeviceUnavailableError('CuPy is not installed', 'context')

        try:
            n_devices = cp.cuda.runtime.getDeviceCount()
            if n_devices > device_id:
                self.device = cp.cuda.Device(device_id)
                with self.device:
                    self.copy_stream = cp.cuda.Stream(non_blocking=True)
                    self.compute_stream = cp.cuda.Stream(non_blocking=True)
        # CUDARuntimeError is a RuntimeError; a missing driver library is a
        # plain RuntimeError or OSError
        except (RuntimeError, OSError) as e:
            raise DeviceUnavailableError(str(e), 'context') from e
        if n_devices <= device_id:
            raise DeviceUnavailableError(f'no CUDA device with id {device_id}', 'context')

        source = '\n'.join(load_kernel_source(k) for k in (RANK_COUNT_NAME, RANK_SCATTER_NAME))
        try:
            with self.device:
                self._module = cp.RawModule(code=source)
                # get_function triggers the NVRTC compile
                self._count_kernel = self._module.get_function(RANK_COUNT_NAME)
                self._scatter_kernel = self._module.get_function(RANK_SCATTER_NAME)
        # CompileException, CUDADriverError and "failed to load libnvrtc"
        # are all RuntimeErrors
        except (RuntimeError, OSError) as e:
            raise KernelBuildError(str(e), 'build') from e

        logger.info('CuPy context ready on device %d (%s)', device_id, self.describe()['name'])

    def describe(self):
        """Device properties as a plain dict."""
        props = cp.cuda.runtime.getDeviceProperties(self.device.id)
        name = props.get('name', b'unknown')
        if isinstance(name, bytes):
            name = name.decode()
        return {
            'backend': self.name,
            'name': name,
            'device_id': self.device.id,
            'compute_capability': self.device.compute_capability,
            'total_memory': props.get('totalGlobalMem'),
            'multiprocessors': props.get('multiProcessorCount'),
            'max_threads_per_block': props.get('maxThreadsPerBlock'),
        }

    # ------------------------------------------------------------------
    # buffers
    # ------------------------------------------------------------------
    def upload(self, host_array):
        return self._on_copy_stream(lambda: cp.asarray(host_array, dtype=cp.int32))

    def fill(self, n, value):
        return self._on_copy_stream(lambda: cp.full(n, value, dtype=cp.int32))

    def _on_copy_stream(self, make_buffer):
        stream = self.copy_stream
        try:
            with self.device, stream:
                start = stream.record()
                buf = make_buffer()
                end = stream.record()
            # writes are blocking
            end.synchronize()
        except (cp.cuda.memory.OutOfMemoryError, cp.cuda.runtime.CUDARuntimeError) as e:
            raise BufferAllocationError(str(e), 'upload') from e
        logger.debug('uploaded buffer of %d elements', buf.size)
        return buf, DeviceEvent(start, end)

    # ------------------------------------------------------------------
    # kernels
    # ------------------------------------------------------------------
    def launch_rank_count(self, source, counts, n, wait_for=()):
        grid, block = count_launch_dims(n)
        return self._launch(self._count_kernel, grid, block,
                            (source, counts, np.int32(n)),
                            wait_for, RANK_COUNT_NAME)

    def launch_rank_scatter(self, source, counts, results, n, sentinel, wait_for=()):
        grid, block = scatter_launch_dims(n)
        return self._launch(self._scatter_kernel, grid, block,
                            (source, counts, results, np.int32(n), np.int32(sentinel)),
                            wait_for, RANK_SCATTER_NAME)

    def _launch(self, kernel, grid, block, args, wait_for, stage):
        stream = self.compute_stream
        try:
            with self.device, stream:
                for event in wait_for:
                    stream.wait_event(event.end)
                start = stream.record()
                kernel(grid, block, args, stream=stream)
                end = stream.record()
        except (cp.cuda.driver.CUDADriverError, cp.cuda.runtime.CUDARuntimeError) as e:
            raise KernelLaunchError(str(e), stage) from e
        logger.debug('launched %s grid=%s block=%s', stage, grid, block)
        return DeviceEvent(start, end)

    def download(self, buffer, wait_for=()):
        stream = self.compute_stream
        try:
            with self.device:
                for event in wait_for:
                    event.end.synchronize()
                host = cp.asnumpy(buffer, stream=stream)
                stream.synchronize()
        except (cp.cuda.driver.CUDADriverError, cp.cuda.runtime.CUDARuntimeError) as e:
            raise SynchronizationError(str(e), 'download') from e
        return host

    def elapsed_ns(self, event):
        ms = cp.cuda.get_elapsed_time(event.start, event.end)
        return int(round(ms * 1e6))


# =====================================================================
# NumPy simulation
# =====================================================================

class NumpyContext:
    """CPU stand-in device running the NumPy renditions of both kernels.

    Commands execute synchronously, so every event is complete by the time
    it is returned; ``wait_for`` is still checked so an incomplete
    predecessor is reported instead of ignored.

    Parameters
    ----------
    seed : int or None
        Seeds the interleaving of competing compare-and-swap attempts.
    tile_size : int, default 256
        Row tile of the N x N comparison grid.
    """

    name = 'numpy'

    def __init__(self, seed=None, tile_size=256):
        self.tile_size = tile_size
        self.rng = np.random.default_rng(seed)
        self.last_dropped = 0

    def describe(self):
        return {
            'backend': self.name,
            'name': 'NumPy host simulation',
            'processor': platform.processor() or platform.machine(),
            'numpy_version': np.__version__,
        }

    def upload(self, host_array):
        start = time.perf_counter_ns()
        try:
            buf = np.array(host_array, dtype=np.int32, copy=True)
        except MemoryError as e:
            raise BufferAllocationError(str(e), 'upload') from e
        return buf, DeviceEvent(start, time.perf_counter_ns())

    def fill(self, n, value):
        start = time.perf_counter_ns()
        try:
            buf = np.full(n, value, dtype=np.int32)
        except MemoryError as e:
            raise BufferAllocationError(str(e), 'upload') from e
        return buf, DeviceEvent(start, time.perf_counter_ns())

    def launch_rank_count(self, source, counts, n, wait_for=()):
        self._check_complete(wait_for, RANK_COUNT_NAME)
        start = time.perf_counter_ns()
        try:
            rank_count_host(source[:n], counts, self.tile_size)
        except MemoryError as e:
            raise KernelLaunchError(str(e), RANK_COUNT_NAME) from e
        return DeviceEvent(start, time.perf_counter_ns())

    def launch_rank_scatter(self, source, counts, results, n, sentinel, wait_for=()):
        self._check_complete(wait_for, RANK_SCATTER_NAME)
        start = time.perf_counter_ns()
        try:
            self.last_dropped = rank_scatter_host(source[:n], counts, results, sentinel, self.rng)
        except MemoryError as e:
            raise KernelLaunchError(str(e), RANK_SCATTER_NAME) from e
        return DeviceEvent(start, time.perf_counter_ns())

    def download(self, buffer, wait_for=()):
        self._check_complete(wait_for, 'download')
        return buffer.copy()

    def elapsed_ns(self, event):
        return event.end - event.start

    @staticmethod
    def _check_complete(wait_for, stage):
        for event in wait_for:
            if event is None or event.end is None:
                raise SynchronizationError('predecessor event did not complete', stage)


# =====================================================================
# Factory
# =====================================================================

BACKENDS = ('auto', 'cupy', 'numpy')


def create_context(backend='auto', device_id=0, seed=None, tile_size=256):
    """Build a context for *backend*.

    'auto' tries CUDA first and falls back to the NumPy simulation when no
    device, driver or compiler is usable.  'cupy' never falls back.
    """
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend: {backend!r} (expected one of {BACKENDS})")
    if backend == 'numpy':
        return NumpyContext(seed=seed, tile_size=tile_size)
    if backend == 'cupy':
        return CupyContext(device_id=device_id)

    try:
        return CupyContext(device_id=device_id)
    except RankSortError as e:
        logger.warning('CUDA backend unavailable (%s); using NumPy simulation', e)
        return NumpyContext(seed=seed, tile_size=tile_size)


def get_backend(context):
    """Return string describing the backend behind *context*."""
    info = context.describe()
    if info['backend'] == 'cupy':
        return f"CuPy + CUDA (GPU: {info['name']})"
    return "NumPy CPU simulation (no CUDA device in use)"
