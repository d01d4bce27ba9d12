import logging
import types

import numpy as np
import pytest

from ranksort.cpu.merge_sort import merge_sort
from ranksort.python_gpu import context as context_mod
from ranksort.python_gpu.context import NumpyContext, create_context, get_backend
from ranksort.python_gpu.errors import (
    BufferAllocationError,
    DeviceUnavailableError,
    KernelBuildError,
    KernelLaunchError,
    RankSortError,
    SynchronizationError,
)
from ranksort.python_gpu.rank_sort_cupy import RankSorter, rank_sort


def _cuda_available():
    try:
        create_context('cupy')
    except RankSortError:
        return False
    return True


requires_cuda = pytest.mark.skipif(not _cuda_available(), reason='no usable CUDA device')


@pytest.fixture(params=['numpy', pytest.param('cupy', marks=requires_cuda)])
def sorter(request):
    return RankSorter(create_context(request.param, seed=0))


# ----------------------------------------------------------------------
# sort properties
# ----------------------------------------------------------------------

def test_random_inputs_sorted_permutation(sorter):
    rng = np.random.default_rng(0)
    for n, max_value in [(50, 10), (300, 1000), (513, 3)]:
        data = rng.integers(0, max_value, size=n)
        result = sorter.sort(data)
        assert result.dtype == np.int32
        assert np.all(result[:-1] <= result[1:])
        assert sorted(result.tolist()) == sorted(data.tolist())
        assert sorter.last_unplaced == 0


def test_distinct_matches_merge_sort(sorter):
    data = np.random.default_rng(1).permutation(400)
    assert sorter.sort(data).tolist() == merge_sort(data.tolist())


def test_already_sorted_unchanged(sorter):
    data = np.sort(np.random.default_rng(2).integers(0, 20, size=100))
    np.testing.assert_array_equal(sorter.sort(data), data)


def test_empty_and_single(sorter):
    empty = sorter.sort([])
    assert empty.shape == (0,)
    assert sorter.device_time_ns == 0
    assert sorter.sort([42]).tolist() == [42]


def test_scenario_a_counts(sorter):
    result, counts = sorter.sort([5, 3, 3, 1], return_counts=True)
    assert counts.tolist() == [3, 1, 1, 0]
    assert result.tolist() == [1, 3, 3, 5]


def test_scenario_b_all_equal(sorter):
    result, counts = sorter.sort([2, 2, 2], return_counts=True)
    assert counts.tolist() == [0, 0, 0]
    assert result.tolist() == [2, 2, 2]


def test_scenario_c_descending(sorter):
    n = 64
    data = np.arange(n)[::-1]
    result, counts = sorter.sort(data, return_counts=True)
    assert counts.tolist() == list(range(n - 1, -1, -1))
    assert result.tolist() == list(range(n))


def test_large_duplicate_runs_at_high_end(sorter):
    # few distinct values near the top of the range: the last run's probes
    # end exactly at the array bound
    rng = np.random.default_rng(5)
    data = np.concatenate([rng.integers(0, 1000, size=200),
                           rng.integers(999_990, 1_000_000, size=2000),
                           np.full(500, 999_999)])
    result = sorter.sort(data)
    assert sorter.last_unplaced == 0
    np.testing.assert_array_equal(result, np.sort(data))


def test_timings_recorded(sorter):
    sorter.sort(np.random.default_rng(4).integers(0, 100, size=256))
    assert sorter.count_time_ns >= 0
    assert sorter.scatter_time_ns >= 0
    assert sorter.device_time_ns == sorter.count_time_ns + sorter.scatter_time_ns


@pytest.mark.parametrize('bad', [[[1, 2], [3, 4]], [1.5, 2.0], [3, -1], [2 ** 31]])
def test_invalid_input_rejected(bad):
    with pytest.raises(ValueError):
        RankSorter(NumpyContext()).sort(bad)


def test_rank_sort_convenience():
    result, device_ns, counts = rank_sort([3, 1, 2], backend='numpy', return_counts=True)
    assert result.tolist() == [1, 2, 3]
    assert counts.tolist() == [2, 0, 1]
    assert device_ns >= 0


# ----------------------------------------------------------------------
# orchestration
# ----------------------------------------------------------------------

class RecordingContext(NumpyContext):
    """NumpyContext that logs every command and its predecessor events."""

    def __init__(self):
        super().__init__(seed=0)
        self.log = []

    def upload(self, host_array):
        buf, evt = super().upload(host_array)
        self.log.append(('upload', evt, []))
        return buf, evt

    def fill(self, n, value):
        buf, evt = super().fill(n, value)
        self.log.append((f'fill({value})', evt, []))
        return buf, evt

    def launch_rank_count(self, source, counts, n, wait_for=()):
        evt = super().launch_rank_count(source, counts, n, wait_for)
        self.log.append(('rank_count', evt, list(wait_for)))
        return evt

    def launch_rank_scatter(self, source, counts, results, n, sentinel, wait_for=()):
        evt = super().launch_rank_scatter(source, counts, results, n, sentinel, wait_for)
        self.log.append(('rank_scatter', evt, list(wait_for)))
        return evt

    def download(self, buffer, wait_for=()):
        self.log.append(('download', None, list(wait_for)))
        return super().download(buffer, wait_for)


def test_stage_order_and_dependencies():
    ctx = RecordingContext()
    RankSorter(ctx).sort([4, 1, 3])

    names = [entry[0] for entry in ctx.log]
    assert names == ['upload', 'fill(0)', 'fill(-1)', 'rank_count', 'rank_scatter', 'download']

    events = {name: evt for name, evt, _ in ctx.log}
    deps = {name: wait for name, _, wait in ctx.log}
    assert deps['rank_count'] == [events['upload'], events['fill(0)']]
    assert deps['rank_scatter'] == [events['fill(-1)'], events['rank_count']]
    assert deps['download'] == [events['rank_count'], events['rank_scatter']]


def test_empty_input_never_touches_device():
    ctx = RecordingContext()
    RankSorter(ctx).sort([])
    assert ctx.log == []


class FailingScatterContext(NumpyContext):
    def launch_rank_scatter(self, *args, **kwargs):
        raise KernelLaunchError('enqueue refused', 'rank_scatter')


def test_launch_failure_propagates():
    with pytest.raises(KernelLaunchError) as info:
        RankSorter(FailingScatterContext()).sort([3, 2, 1])
    assert info.value.stage == 'rank_scatter'


def test_allocation_failure_wrapped(monkeypatch):
    def no_memory(*args, **kwargs):
        raise MemoryError('out of memory')

    monkeypatch.setattr(context_mod.np, 'full', no_memory)
    with pytest.raises(BufferAllocationError) as info:
        RankSorter(NumpyContext()).sort([3, 2, 1])
    assert info.value.stage == 'upload'
    assert isinstance(info.value.__cause__, MemoryError)


def test_count_kernel_failure_wrapped(monkeypatch):
    def no_memory(*args, **kwargs):
        raise MemoryError('tile too large')

    monkeypatch.setattr(context_mod, 'rank_count_host', no_memory)
    with pytest.raises(KernelLaunchError) as info:
        RankSorter(NumpyContext()).sort([3, 2, 1])
    assert info.value.stage == 'rank_count'


def test_incomplete_predecessor_reported():
    ctx = NumpyContext()
    buf, _ = ctx.fill(3, 0)
    pending = context_mod.DeviceEvent(start=0, end=None)
    with pytest.raises(SynchronizationError) as info:
        ctx.download(buf, wait_for=[pending])
    assert info.value.stage == 'download'


def test_unplaced_elements_logged(monkeypatch, caplog):
    def bad_counts(source, counts, tile_size=256):
        counts[:] = source.size - 1

    monkeypatch.setattr(context_mod, 'rank_count_host', bad_counts)
    sorter = RankSorter(NumpyContext(seed=0))
    with caplog.at_level(logging.WARNING):
        result = sorter.sort([1, 1, 1, 1])
    assert sorter.last_unplaced == 3
    assert sorter.context.last_dropped == sorter.last_unplaced
    assert result.tolist().count(-1) == 3
    assert 'unplaced' in caplog.text


# ----------------------------------------------------------------------
# contexts
# ----------------------------------------------------------------------

def test_create_context_numpy():
    ctx = create_context('numpy', seed=1)
    assert isinstance(ctx, NumpyContext)
    assert 'NumPy' in get_backend(ctx)
    assert ctx.describe()['backend'] == 'numpy'


def test_create_context_unknown_backend():
    with pytest.raises(ValueError):
        create_context('opencl')


def test_auto_backend_always_returns_context():
    ctx = create_context('auto')
    assert ctx.describe()['backend'] in ('cupy', 'numpy')


@requires_cuda
def test_cupy_context_describe():
    info = create_context('cupy').describe()
    assert info['backend'] == 'cupy'
    assert info['name']


def test_auto_backend_falls_back_when_build_fails(monkeypatch):
    class NoCompiler:
        def __init__(self, device_id=0):
            raise KernelBuildError('CuPy failed to load libnvrtc', 'build')

    monkeypatch.setattr(context_mod, 'CupyContext', NoCompiler)
    assert isinstance(create_context('auto'), NumpyContext)
    with pytest.raises(KernelBuildError):
        create_context('cupy')


def test_cupy_build_runtime_error_wrapped(monkeypatch):
    class FakeModule:
        def __init__(self, code):
            pass

        def get_function(self, name):
            raise RuntimeError('CuPy failed to load libnvrtc.so')

    class FakeDevice:
        id = 0

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

    fake_cp = types.SimpleNamespace(cuda=types.SimpleNamespace(
        runtime=types.SimpleNamespace(getDeviceCount=lambda: 1),
        Device=lambda device_id: FakeDevice(),
        Stream=lambda non_blocking=True: object(),
    ), RawModule=FakeModule)
    monkeypatch.setattr(context_mod, 'cp', fake_cp)

    with pytest.raises(KernelBuildError) as info:
        context_mod.CupyContext()
    assert info.value.stage == 'build'
    assert isinstance(create_context('auto'), NumpyContext)


def test_cupy_missing_driver_is_unavailable(monkeypatch):
    def no_driver():
        raise RuntimeError('CUDA driver library not found')

    fake_cp = types.SimpleNamespace(cuda=types.SimpleNamespace(
        runtime=types.SimpleNamespace(getDeviceCount=no_driver)))
    monkeypatch.setattr(context_mod, 'cp', fake_cp)

    with pytest.raises(DeviceUnavailableError) as info:
        context_mod.CupyContext()
    assert info.value.stage == 'context'
    assert isinstance(create_context('auto'), NumpyContext)
