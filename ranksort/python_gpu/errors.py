"""
Error taxonomy for the accelerator rank sort.

Every failure raised by a context or by the orchestrator carries the stage
it happened in, so callers can tell an allocation failure from a launch or
synchronisation failure without parsing messages.
"""


class RankSortError(RuntimeError):
    """Base class for failures of a rank sort call.

    Parameters
    ----------
    message : str
    stage : str
        Pipeline stage that failed ('context', 'build', 'upload',
        'rank_count', 'rank_scatter', 'download').
    """

    def __init__(self, message, stage):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage


class DeviceUnavailableError(RankSortError):
    """No usable accelerator for the requested backend."""


class KernelBuildError(RankSortError):
    """Kernel source failed to compile."""


class BufferAllocationError(RankSortError):
    """A device buffer could not be allocated or filled."""


class KernelLaunchError(RankSortError):
    """A kernel could not be enqueued."""


class SynchronizationError(RankSortError):
    """Waiting on a predecessor event or reading back a buffer failed."""
