# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import time
import logging
import numpy as np
import diffevo.common.typing as tp
from diffevo.common import errors
from . import base
from .population import as_loss

global_logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------------------

class GenerationPrinter:
    """Printer to register as "generation" callback in an optimization loop,
    for printing the best fitness regularly.

    Parameters
    ----------
    print_interval_generations: int
        max number of generations before performing another print
    print_interval_seconds: float
        max number of seconds before performing another print
    """

    def __init__(self, print_interval_generations: int = 1, print_interval_seconds: float = 60.0) -> None:
        assert print_interval_generations > 0
        assert print_interval_seconds > 0
        self._print_interval_generations = int(print_interval_generations)
        self._print_interval_seconds = print_interval_seconds
        self._next_generation = 0
        self._next_time = time.time() + print_interval_seconds

    def __call__(self, loop: base.OptimizationLoop, generation: int, best_fitness: float) -> None:
        if time.time() >= self._next_time or generation >= self._next_generation:
            self._next_time = time.time() + self._print_interval_seconds
            self._next_generation = generation + self._print_interval_generations
            print(f"After generation {generation}, best fitness is {best_fitness}")

# -------------------------------------------------------------------------------------

class GenerationLogger:
    """Logger to register as "generation" callback in an optimization loop, for logging
    the best fitness regularly.

    Parameters
    ----------
    logger:
        given logger that callback will use to log
    log_level:
        log level that logger will write to
    log_interval_generations: int
        max number of generations before performing another log
    log_interval_seconds:
        max number of seconds before performing another log
    """

    def __init__(
        self,
        *,
        logger: logging.Logger = global_logger,
        log_level: int = logging.INFO,
        log_interval_generations: int = 1,
        log_interval_seconds: float = 60.0,
    ) -> None:
        assert log_interval_generations > 0
        assert log_interval_seconds > 0
        self._logger = logger
        self._log_level = log_level
        self._log_interval_generations = int(log_interval_generations)
        self._log_interval_seconds = log_interval_seconds
        self._next_generation = 0
        self._next_time = time.time() + log_interval_seconds

    def __call__(self, loop: base.OptimizationLoop, generation: int, best_fitness: float) -> None:
        if time.time() >= self._next_time or generation >= self._next_generation:
            self._next_time = time.time() + self._log_interval_seconds
            self._next_generation = generation + self._log_interval_generations
            self._logger.log(
                self._log_level,
                "After generation %s, best fitness is %s (%s evaluations)",
                generation,
                best_fitness,
                loop.evaluator.num_evaluations,
            )

# -------------------------------------------------------------------------------------

class ProgressBar:
    """Progress bar to register as "generation" callback in an optimization loop,
    displaying the best fitness so far
    """

    def __init__(self) -> None:
        self._progress_bar: tp.Any = None
        self._current = 0

    def __call__(self, loop: base.OptimizationLoop, generation: int, best_fitness: float) -> None:
        if self._progress_bar is None:
            # pylint: disable=import-outside-toplevel
            try:
                from tqdm import tqdm  # Inline import to avoid additional dependency
            except ImportError as e:
                raise ImportError(
                    f"{self.__class__.__name__} requires tqdm which is not installed by default "
                    "(pip install tqdm)"
                ) from e
            self._progress_bar = tqdm(total=loop.config.generations, unit="gen")
            self._progress_bar.update(self._current)
        self._progress_bar.set_postfix(best=best_fitness, refresh=False)
        self._progress_bar.update(1)
        self._current += 1
        if loop.is_done:
            self.close()

    def close(self) -> None:
        if self._progress_bar is not None:
            self._progress_bar.close()
            self._progress_bar = None

# -------------------------------------------------------------------------------------

class EarlyStopping:
    """Callback for stopping the :code:`run` method before all generations are done.

    Parameters
    ----------
    stopping_criterion: func(loop) -> bool
        function that takes the current optimization loop as input and returns True
        if the optimization must be stopped

    Note
    ----
    This callback can be registered on "initialization" and "generation".

    Example
    -------
    In the following code, the :code:`run` method will be stopped after the 4th generation

    >>> early_stopping = diffevo.callbacks.EarlyStopping(lambda loop: loop.num_generations > 3)
    >>> loop.register_callback("generation", early_stopping)
    >>> loop.run()
    """

    def __init__(self, stopping_criterion: tp.Callable[[base.OptimizationLoop], bool]) -> None:
        self.stopping_criterion = stopping_criterion

    def __call__(self, loop: base.OptimizationLoop, *args: tp.Any, **kwargs: tp.Any) -> None:
        if self.stopping_criterion(loop):
            raise errors.EarlyStopping("Early stopping criterion is reached")

    @classmethod
    def timer(cls, max_duration: float) -> "EarlyStopping":
        """Early stop when max_duration seconds has been reached (from the first call)"""
        return cls(_DurationCriterion(max_duration))

    @classmethod
    def no_improvement_stopper(cls, tolerance_window: int) -> "EarlyStopping":
        """Early stop when best fitness didn't decrease during tolerance_window generations"""
        return cls(_FitnessImprovementToleranceCriterion(tolerance_window))

    @classmethod
    def fitness_threshold(cls, threshold: float) -> "EarlyStopping":
        """Early stop when best fitness is lower or equal to threshold"""
        return cls(lambda loop: loop.best_fitness is not None and loop.best_fitness <= threshold)

class _DurationCriterion:
    def __init__(self, max_duration: float) -> None:
        self._start = float("inf")
        self._max_duration = max_duration

    def __call__(self, loop: base.OptimizationLoop) -> bool:
        if np.isinf(self._start):
            self._start = time.time()
        return time.time() > self._start + self._max_duration

class _FitnessImprovementToleranceCriterion:
    def __init__(self, tolerance_window: int) -> None:
        self._tolerance_window: int = tolerance_window
        self._best_value: tp.Optional[float] = None
        self._tolerance_count: int = 0

    def __call__(self, loop: base.OptimizationLoop) -> bool:
        best = loop.best_fitness
        if best is None:
            return False
        if self._best_value is None:
            self._best_value = best
            return False
        if not as_loss(best) < as_loss(self._best_value):
            self._tolerance_count += 1
        else:
            self._tolerance_count = 0
            self._best_value = best
        return self._tolerance_count > self._tolerance_window
