# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import diffevo.common.typing as tp


class DelayedJob:
    """Future-like object which delays computation
    """

    def __init__(self, func: tp.Callable[..., tp.Any], *args: tp.Any, **kwargs: tp.Any) -> None:
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self._result: tp.Optional[tp.Any] = None
        self._computed = False

    def done(self) -> bool:
        return True

    def result(self) -> tp.Any:
        if not self._computed:
            self._result = self.func(*self.args, **self.kwargs)
            self._computed = True
        return self._result


class SequentialExecutor:
    """Executor which run sequentially and locally
    (just calls the function and returns a DelayedJob)
    """

    def submit(self, fn: tp.Callable[..., tp.Any], *args: tp.Any, **kwargs: tp.Any) -> DelayedJob:
        return DelayedJob(fn, *args, **kwargs)


def gather(
    executor: tp.Optional[tp.ExecutorLike], fn: tp.Callable[..., tp.Any], arguments: tp.Iterable[tp.Tuple[tp.Any, ...]]
) -> tp.List[tp.Any]:
    """Submits fn(*args) for all provided args and returns the results in submission order"""
    if executor is None:
        executor = SequentialExecutor()
    jobs = [executor.submit(fn, *args) for args in arguments]
    return [job.result() for job in jobs]
