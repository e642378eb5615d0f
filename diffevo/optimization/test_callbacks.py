# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import time
import logging
import warnings
import diffevo as de
import diffevo.common.typing as tp
from diffevo.common import errors
from . import base
from . import callbacks


def _make_loop(generations: int = 10, **kwargs: tp.Any) -> base.OptimizationLoop:
    config = base.RunConfig(population_size=6, generations=generations, seed=12, **kwargs)
    return base.OptimizationLoop([1.0, -2.0, 3.0], config)


def test_progressbar() -> None:
    loop = _make_loop(generations=8)
    progress = de.callbacks.ProgressBar()
    loop.register_callback("generation", progress)
    loop.run()
    assert progress._current == 8
    assert progress._progress_bar is None  # closed when the loop is done
    progress.close()  # no-op


def test_early_stopping() -> None:
    loop = _make_loop(generations=100)
    loop.register_callback("generation", de.callbacks.EarlyStopping(lambda lp: lp.num_generations > 3))
    loop.register_callback("generation", de.callbacks.EarlyStopping.timer(100))  # should not get triggered
    population = loop.run()
    assert loop.num_generations == 4
    assert not loop.is_done
    assert len(population) == 6
    # can be resumed
    loop.remove_all_callbacks()
    loop.step()
    assert loop.num_generations == 5


def test_early_stopping_at_initialization() -> None:
    loop = _make_loop()
    loop.register_callback("initialization", de.callbacks.EarlyStopping(lambda lp: True))
    loop.run()
    assert loop.population is not None
    assert not loop.num_generations


def test_no_improvement_stopper() -> None:
    loop = _make_loop(generations=100, mutation_ratio=0.0)  # never improves
    no_imp_window = 3
    loop.register_callback("generation", de.callbacks.EarlyStopping.no_improvement_stopper(no_imp_window))
    loop.run()
    assert loop.num_generations == no_imp_window + 2


def test_no_improvement_stopper_nan_fitness() -> None:
    config = base.RunConfig(population_size=6, generations=100, seed=12)
    loop = base.OptimizationLoop([1.0, -2.0], config, fitness_model=lambda target, position: float("nan"))
    loop.register_callback("generation", de.callbacks.EarlyStopping.no_improvement_stopper(2))
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", errors.BadFitnessWarning)
        loop.run()
    assert loop.num_generations == 4


def test_fitness_threshold() -> None:
    loop = _make_loop(generations=100)
    loop.register_callback("generation", de.callbacks.EarlyStopping.fitness_threshold(float("inf")))
    loop.run()
    assert loop.num_generations == 1


def test_duration_criterion() -> None:
    loop = _make_loop()
    crit = callbacks._DurationCriterion(0.01)
    assert not crit(loop)
    assert not crit(loop)
    assert not crit(loop)
    time.sleep(0.01)
    assert crit(loop)


def test_generation_logger(caplog: tp.Any) -> None:
    logger = logging.getLogger(__name__)
    loop = _make_loop(generations=3)
    loop.register_callback(
        "generation",
        callbacks.GenerationLogger(
            logger=logger, log_level=logging.INFO, log_interval_generations=2, log_interval_seconds=10.0
        ),
    )
    with caplog.at_level(logging.INFO):
        loop.run()
    assert "After generation 0, best fitness is" in caplog.text
    assert "After generation 1, best fitness is" not in caplog.text
    assert "After generation 2, best fitness is" in caplog.text
    assert "evaluations)" in caplog.text


def test_generation_printer(capsys: tp.Any) -> None:
    loop = _make_loop(generations=2)
    loop.register_callback("generation", callbacks.GenerationPrinter())
    loop.run()
    out = capsys.readouterr().out
    assert f"After generation 1, best fitness is {loop.best_fitness}" in out
