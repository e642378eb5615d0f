# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import warnings
import pytest
import numpy as np
import diffevo.common.typing as tp
from diffevo.common import errors
from diffevo.common import testing
from . import base
from . import utils
from .population import Bounds


TARGET = [4.0, -2.0, 3.5, 5.0, -11.0, -4.7, -9.0, 100.0, -23.0]


class InvariantChecker:
    """Checks the population invariants at the end of each generation"""

    def __init__(self) -> None:
        self.generations: tp.List[int] = []
        self.best_fitnesses: tp.List[float] = []

    def __call__(self, loop: base.OptimizationLoop, generation: int, best_fitness: float) -> None:
        population = loop.population
        assert population is not None
        assert len(population) == loop.config.population_size
        for individual in population:
            assert individual.position.shape == (loop.dimension,)
            assert loop.config.bounds.contains(individual.position)
            assert individual.fitness == loop.evaluator.evaluate(individual.position)
        self.generations.append(generation)
        self.best_fitnesses.append(best_fitness)


@testing.parametrized(
    too_small_population=(dict(population_size=3),),
    negative_generations=(dict(generations=-1),),
    negative_ratio=(dict(mutation_ratio=-0.5),),
    large_ratio=(dict(mutation_ratio=1.5),),
    no_dimension=(dict(num_dimensions=0),),
    no_worker=(dict(num_workers=0),),
)
def test_config_errors(kwargs: tp.Dict[str, tp.Any]) -> None:
    with pytest.raises(errors.ConfigurationError):
        base.RunConfig(**kwargs)


def test_loop_errors() -> None:
    with pytest.raises(errors.DimensionMismatchError):
        base.OptimizationLoop([1.0, 2.0], base.RunConfig(num_dimensions=3))
    with pytest.raises(errors.ConfigurationError):
        base.OptimizationLoop([], base.RunConfig())
    with pytest.raises(errors.ConfigurationError):
        base.RunConfig(bounds=Bounds(5, -5))
    loop = base.OptimizationLoop([1.0, 2.0], base.RunConfig(num_dimensions=2))
    with pytest.raises(errors.DiffEvoRuntimeError):
        loop.provide_recommendation()
    loop.initialize()
    with pytest.raises(errors.DiffEvoRuntimeError):
        loop.initialize()


def test_config_repr() -> None:
    config = base.RunConfig(population_size=4, seed=12)
    assert "population_size=4" in repr(config)
    assert "bounds=Bounds(low=-5.0, high=5.0)" in repr(config)


def test_initialize() -> None:
    loop = base.OptimizationLoop(TARGET, base.RunConfig(population_size=7, seed=12))
    assert loop.best_fitness is None
    population = loop.initialize()
    assert len(population) == 7
    assert population.dimension == 9
    assert loop.best_fitness == min(population.fitnesses())
    assert not loop.num_generations
    assert not loop.best_fitness_history


@testing.parametrized(
    sequential=(1,),
    threaded=(4,),
)
def test_run_invariants(num_workers: int) -> None:
    config = base.RunConfig(population_size=12, generations=30, seed=12, num_workers=num_workers)
    loop = base.OptimizationLoop(TARGET, config)
    checker = InvariantChecker()
    loop.register_callback("generation", checker)
    initial: tp.List[float] = []
    loop.register_callback("initialization", lambda lp: initial.append(lp.best_fitness))
    population = loop.run()
    assert loop.is_done
    assert loop.num_generations == 30
    assert checker.generations == list(range(30))
    assert len(initial) == 1
    # monotonic improvement
    fitnesses = initial + checker.best_fitnesses
    assert all(f2 <= f1 for f1, f2 in zip(fitnesses, fitnesses[1:]))
    np.testing.assert_array_equal(loop.best_fitness_history, checker.best_fitnesses)
    assert loop.best_fitness == checker.best_fitnesses[-1] == population.best().fitness
    assert loop.best_fitness < initial[0]
    assert loop.provide_recommendation() is population.best()


def test_run_determinism() -> None:
    results = []
    for num_workers in [1, 1, 3]:
        config = base.RunConfig(population_size=10, generations=20, seed=24, num_workers=num_workers)
        loop = base.OptimizationLoop(TARGET, config)
        population = loop.run()
        results.append((loop.best_fitness_history, population.positions()))
    for history, positions in results[1:]:
        testing.printed_assert_equal(history, results[0][0])
        np.testing.assert_array_equal(positions, results[0][1])
    other = base.OptimizationLoop(TARGET, base.RunConfig(population_size=10, generations=20, seed=25))
    other.run()
    assert other.best_fitness_history != results[0][0]


def test_run_without_mutation() -> None:
    config = base.RunConfig(population_size=5, generations=10, mutation_ratio=0.0, seed=12)
    loop = base.OptimizationLoop([1.0, 1.0], config)
    initial = loop.initialize().positions()
    initial_best = loop.best_fitness
    population = loop.run()
    np.testing.assert_array_equal(population.positions(), initial)
    assert loop.best_fitness_history == [initial_best] * 10
    assert loop.evaluator.num_evaluations == 5


def test_minimal_population() -> None:
    config = base.RunConfig(
        population_size=4,
        generations=5,
        bounds=Bounds(-5, 5),
        mutation_ratio=1.0,
        mutation_factor=0.5,
        seed=12,
    )
    loop = base.OptimizationLoop([1.0, 1.0], config)
    population = loop.run()
    assert len(population) == 4
    assert loop.num_generations == 5
    assert loop.evaluator.num_evaluations == 4 + 5 * 4


def test_step_initializes() -> None:
    loop = base.OptimizationLoop([1.0, -1.0, 0.5], base.RunConfig(population_size=6, generations=2, seed=1))
    best = loop.step()
    assert loop.population is not None
    assert loop.num_generations == 1
    assert best == loop.best_fitness
    loop.run()
    assert loop.num_generations == 2


def test_zero_generation() -> None:
    loop = base.OptimizationLoop([1.0, -1.0], base.RunConfig(population_size=6, generations=0, seed=1))
    population = loop.run()
    assert len(population) == 6
    assert not loop.num_generations
    assert loop.best_fitness is not None


def test_nan_fitness() -> None:
    loop = base.OptimizationLoop(
        [1.0, 2.0],
        base.RunConfig(population_size=4, generations=3, seed=1),
        fitness_model=lambda target, position: float("nan"),
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", errors.BadFitnessWarning)
        loop.run()
    assert loop.best_fitness is not None and np.isnan(loop.best_fitness)
    assert len(loop.best_fitness_history) == 3
    assert all(np.isnan(f) for f in loop.best_fitness_history)
    assert loop.num_generations == 3


def test_nan_fitness_is_replaced_by_running_best() -> None:
    loop = base.OptimizationLoop([1.0, 2.0], base.RunConfig(population_size=4, generations=0, seed=1))
    loop.initialize()
    loop.best_fitness = float("nan")
    loop.step()
    assert loop.best_fitness is not None and not np.isnan(loop.best_fitness)
    assert loop.best_fitness == loop.best_fitness_history[-1]


def test_verbosity(capsys: tp.Any) -> None:
    loop = base.OptimizationLoop([1.0, 1.0], base.RunConfig(population_size=4, generations=2, verbosity=2, seed=1))
    loop.run()
    out = capsys.readouterr().out
    assert "Generation 0: best fitness is" in out
    assert "Generation 1: best fitness is" in out
    assert "Current best individual is: Individual(position=" in out


def test_inefficient_settings_warning() -> None:
    loop = base.OptimizationLoop([1.0, 1.0], base.RunConfig(population_size=4, generations=1, num_workers=2))
    with pytest.warns(errors.InefficientSettingsWarning):
        loop.run(executor=utils.SequentialExecutor())


def test_callbacks_removal() -> None:
    loop = base.OptimizationLoop([1.0, 1.0], base.RunConfig(population_size=4, generations=2))
    checker = InvariantChecker()
    loop.register_callback("generation", checker)
    loop.remove_all_callbacks()
    loop.run()
    assert not checker.generations
    with pytest.raises(AssertionError):
        loop.register_callback("tell", checker)
