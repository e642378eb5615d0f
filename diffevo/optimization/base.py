# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import warnings
from concurrent import futures
import numpy as np
import diffevo.common.typing as tp
from diffevo.common import errors
from .population import MIN_POPULATION_SIZE
from .population import as_loss
from .population import Bounds
from .population import Individual
from .population import Population
from .fitness import Evaluator
from .fitness import dot_product
from .differentialevolution import DifferentialMutation
from . import utils


logger = logging.getLogger(__name__)
_LoopCallBack = tp.Union[
    tp.Callable[["OptimizationLoop", int, float], None], tp.Callable[["OptimizationLoop"], None]
]


# pylint: disable=too-many-instance-attributes
class RunConfig:
    """Settings of an optimization run, checked at creation.

    Parameters
    ----------
    population_size: int
        number of individuals (at least 4: the individual and its 3 donors)
    generations: int
        number of generations to run
    bounds: Bounds
        box constraints for the positions, also used for the initial sampling
    mutation_ratio: float
        probability for each dimension to be mutated at each generation, in [0, 1]
    mutation_factor: float
        differential weight applied to the donor difference
    num_dimensions: int or None
        expected number of dimensions, derived from the target vector if None
    verbosity: int
        print information about the optimization (0: None, 1: best fitness, 2: best fitness and recommendation)
    num_workers: int
        number of threads evaluating and mutating individuals in parallel
    seed: int or None
        seed of the random state, for reproducibility
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        *,
        population_size: int = 20,
        generations: int = 1000,
        bounds: tp.Optional[Bounds] = None,
        mutation_ratio: float = 0.5,
        mutation_factor: float = 0.8,
        num_dimensions: tp.Optional[int] = None,
        verbosity: int = 0,
        num_workers: int = 1,
        seed: tp.Optional[int] = None,
    ) -> None:
        if population_size < MIN_POPULATION_SIZE:
            raise errors.ConfigurationError(
                f"Population size must be at least {MIN_POPULATION_SIZE} (got {population_size})"
            )
        if generations < 0:
            raise errors.ConfigurationError(f"Number of generations must be non-negative (got {generations})")
        if not 0 <= mutation_ratio <= 1:
            raise errors.ConfigurationError(f"Mutation ratio must be in [0, 1] (got {mutation_ratio})")
        if num_dimensions is not None and num_dimensions < 1:
            raise errors.ConfigurationError(f"Number of dimensions must be positive (got {num_dimensions})")
        if num_workers < 1:
            raise errors.ConfigurationError(f"Number of workers must be positive (got {num_workers})")
        self.population_size = int(population_size)
        self.generations = int(generations)
        self.bounds = Bounds() if bounds is None else bounds
        self.mutation_ratio = float(mutation_ratio)
        self.mutation_factor = float(mutation_factor)
        self.num_dimensions = num_dimensions
        self.verbosity = verbosity
        self.num_workers = int(num_workers)
        self.seed = seed

    def __repr__(self) -> str:
        params = ", ".join(f"{x}={y!r}" for x, y in sorted(self.__dict__.items()))
        return f"{self.__class__.__name__}({params})"


class OptimizationLoop:
    """Differential evolution driver: initializes and evaluates a random population,
    then runs the configured number of generations of mutation and selection,
    keeping track of the best fitness.

    Parameters
    ----------
    target: array-like
        target vector, which defines the fitness of the positions and their dimension
    config: RunConfig
        settings of the run (defaults to :code:`RunConfig()`)
    fitness_model: callable
        :code:`fitness_model(target, position) -> float`, to minimize

    Note
    ----
    Randomness is entirely driven by :code:`random_state`, seeded from the configuration:
    each generation draws one seed per individual, so that runs only depend on the seed
    and not on the number of workers.
    """

    def __init__(
        self,
        target: tp.ArrayLike,
        config: tp.Optional[RunConfig] = None,
        fitness_model: tp.FitnessModel = dot_product,
    ) -> None:
        self.config = RunConfig() if config is None else config
        self.evaluator = Evaluator(target, fitness_model=fitness_model)
        if not self.evaluator.dimension:
            raise errors.ConfigurationError("No variable to optimize in this target.")
        expected = self.config.num_dimensions
        if expected is not None and expected != self.evaluator.dimension:
            raise errors.DimensionMismatchError(
                f"Target has {self.evaluator.dimension} dimensions while {expected} were configured"
            )
        self.mutation = DifferentialMutation(
            self.config.bounds,
            mutation_ratio=self.config.mutation_ratio,
            mutation_factor=self.config.mutation_factor,
        )
        self.random_state = np.random.RandomState(self.config.seed)
        self.population: tp.Optional[Population] = None
        self.best_fitness: tp.Optional[float] = None
        self.best_fitness_history: tp.List[float] = []
        self.num_generations = 0
        self._callbacks: tp.Dict[str, tp.List[tp.Any]] = {}

    @property
    def dimension(self) -> int:
        return self.evaluator.dimension

    @property
    def is_done(self) -> bool:
        return self.num_generations >= self.config.generations

    def register_callback(self, name: str, callback: _LoopCallBack) -> None:
        """Add a callback method called at the end of the initialization or of each generation.

        Parameters
        ----------
        name: str
            either :code:`initialization` (callback called with the loop as only argument)
            or :code:`generation` (callback called with the loop, the index of the generation
            and the best fitness so far)
        callback: callable
            the callable to register
        """
        assert name in ["initialization", "generation"], (
            f'Only "initialization" and "generation" can have callbacks (not {name})'
        )
        self._callbacks.setdefault(name, []).append(callback)

    def remove_all_callbacks(self) -> None:
        """Removes all registered callables"""
        self._callbacks = {}

    def _get_population(self) -> Population:
        if self.population is None:
            raise errors.DiffEvoRuntimeError("Population is not initialized yet")
        return self.population

    def _update_best(self) -> float:
        """Updates the running best with the best fitness of the population (NaN is kept as-is
        but any other value replaces it), and returns the latter
        """
        generation_best = self._get_population().best().fitness
        assert generation_best is not None, "Population must be evaluated"
        if self.best_fitness is None or as_loss(generation_best) < as_loss(self.best_fitness):
            self.best_fitness = generation_best
        return generation_best

    def initialize(self, executor: tp.Optional[tp.ExecutorLike] = None) -> Population:
        """Creates the random population and evaluates it"""
        if self.population is not None:
            raise errors.DiffEvoRuntimeError("Population is already initialized")
        self.population = Population.random(
            self.config.population_size, self.dimension, self.config.bounds, self.random_state
        )
        self.evaluator(self.population, executor=executor)
        self._update_best()
        logger.info(
            "Initialized population of %s individuals with %s dimensions (best fitness: %s)",
            len(self.population),
            self.dimension,
            self.best_fitness,
        )
        for callback in self._callbacks.get("initialization", []):
            callback(self)
        return self.population

    def step(self, executor: tp.Optional[tp.ExecutorLike] = None) -> float:
        """Runs one generation (initializing the population first if need be)

        Returns
        -------
        float
            the best fitness so far
        """
        if self.population is None:
            self.initialize(executor=executor)
        population = self._get_population()
        generation = self.num_generations
        seeds = self.random_state.randint(2 ** 32, size=len(population), dtype=np.uint32).tolist()
        accepted = self.mutation.step(population, self.evaluator, seeds, executor=executor)
        self.best_fitness_history.append(self._update_best())
        self.num_generations += 1
        best = self.best_fitness
        assert best is not None
        logger.debug("Generation %s: %s accepted trial(s), best fitness %s", generation, accepted, best)
        if self.config.verbosity:
            print(f"Generation {generation}: best fitness is {best}")
            if self.config.verbosity > 1:
                print(f"Current best individual is: {population.best()}")
        for callback in self._callbacks.get("generation", []):
            callback(self, generation, best)
        return best

    def run(self, executor: tp.Optional[tp.ExecutorLike] = None) -> Population:
        """Optimization (minimization) procedure, until the configured number of generations
        is reached or an EarlyStopping is raised by a callback.

        Parameters
        ----------
        executor: Executor
            An executor object, with method :code:`submit(callable, *args, **kwargs)` and returning a Future-like object
            with method :code:`result()`. If None, a :code:`concurrent.futures.ThreadPoolExecutor` with
            :code:`num_workers` threads is used when :code:`num_workers > 1`, otherwise everything runs sequentially.

        Returns
        -------
        Population
            the final population
        """
        if executor is None:
            if self.config.num_workers > 1:
                with futures.ThreadPoolExecutor(max_workers=self.config.num_workers) as pool:
                    return self.run(executor=pool)
            executor = utils.SequentialExecutor()
        elif isinstance(executor, utils.SequentialExecutor) and self.config.num_workers > 1:
            warnings.warn(
                f"num_workers = {self.config.num_workers} > 1 is suboptimal when run sequentially",
                errors.InefficientSettingsWarning,
            )
        try:
            if self.population is None:
                self.initialize(executor=executor)
            while not self.is_done:
                self.step(executor=executor)
        except errors.EarlyStopping as e:
            logger.info("Stopped after %s generation(s): %s", self.num_generations, e)
        return self._get_population()

    def provide_recommendation(self) -> Individual:
        """Best individual of the current population"""
        return self._get_population().best()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(dimension={self.dimension}, config={self.config})"
