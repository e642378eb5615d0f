# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import numpy as np
import diffevo.common.typing as tp
from diffevo.common import errors


MIN_POPULATION_SIZE = 4  # the individual itself + 3 donors


def as_loss(fitness: tp.Optional[float]) -> float:
    """Returns the fitness if available and not NaN, or inf otherwise.
    Used to rank individuals and fitness values
    """
    if fitness is None or np.isnan(fitness):
        return float("inf")
    return fitness


class Bounds:
    """Box constraints applied identically to every dimension

    Parameters
    ----------
    low: float
        lower limit of all position components
    high: float
        upper limit of all position components
    """

    __slots__ = ("_low", "_high")

    def __init__(self, low: float = -5.0, high: float = 5.0) -> None:
        low, high = float(low), float(high)
        if not low <= high:  # also catches NaN
            raise errors.ConfigurationError(f"Lower bound {low} must be lower or equal to upper bound {high}")
        self._low = low
        self._high = high

    @property
    def low(self) -> float:
        return self._low

    @property
    def high(self) -> float:
        return self._high

    def clip(self, data: tp.ArrayLike) -> np.ndarray:
        return np.clip(data, self._low, self._high)

    def contains(self, data: tp.ArrayLike) -> bool:
        data = np.asarray(data)
        return bool(np.all(data >= self._low) and np.all(data <= self._high))

    def sample(self, random_state: np.random.RandomState, size: tp.Union[int, tp.Tuple[int, ...]]) -> np.ndarray:
        """Uniform draws in the box"""
        return random_state.uniform(self._low, self._high, size=size)

    def __eq__(self, other: tp.Any) -> bool:
        if not isinstance(other, Bounds):
            return NotImplemented
        return (self._low, self._high) == (other._low, other._high)

    def __hash__(self) -> int:
        return hash((self._low, self._high))

    def __repr__(self) -> str:
        return f"Bounds(low={self._low}, high={self._high})"


def _as_position(data: tp.ArrayLike) -> np.ndarray:
    position = np.array(data, dtype=float, copy=True)
    if position.ndim != 1:
        raise errors.DimensionMismatchError(f"Positions must be 1D arrays (got shape {position.shape})")
    position.setflags(write=False)
    return position


class Individual:
    """One candidate solution: a position and its cached fitness.

    The position is a read-only array, it is only ever replaced as a whole
    (see :code:`challenge`) so that arrays previously handed out never change.
    """

    def __init__(self, position: tp.ArrayLike, fitness: tp.Optional[float] = None) -> None:
        self._position = _as_position(position)
        self.fitness = fitness

    @property
    def position(self) -> np.ndarray:
        return self._position

    @property
    def dimension(self) -> int:
        return self._position.size

    @property
    def loss(self) -> float:
        """Fitness used for ranking: inf if not evaluated or NaN"""
        return as_loss(self.fitness)

    def set_fitness(self, fitness: float) -> None:
        self.fitness = float(fitness)

    def challenge(self, trial: tp.ArrayLike, trial_fitness: float) -> bool:
        """Greedy selection: replaces position and fitness by the trial ones
        if and only if the trial fitness is strictly lower than the current one.
        An individual which was never evaluated accepts any non-NaN trial.

        Returns
        -------
        bool
            whether the trial was accepted
        """
        trial = _as_position(trial)
        if trial.size != self.dimension:
            raise errors.DimensionMismatchError(
                f"Trial has {trial.size} dimensions while individual has {self.dimension}"
            )
        current = float("inf") if self.fitness is None else self.fitness
        if not trial_fitness < current:  # strict, and False whenever NaN is involved
            return False
        self._position = trial
        self.fitness = float(trial_fitness)
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(position={self._position.tolist()}, fitness={self.fitness})"


class Population:
    """Fixed-size ordered collection of individuals sharing the same dimension"""

    def __init__(self, individuals: tp.Iterable[Individual]) -> None:
        self._individuals: tp.List[Individual] = list(individuals)
        if not self._individuals:
            raise errors.ConfigurationError("A population requires at least one individual")
        dims = {ind.dimension for ind in self._individuals}
        if len(dims) > 1:
            raise errors.DimensionMismatchError(f"Individuals have different dimensions: {sorted(dims)}")

    @classmethod
    def random(
        cls,
        population_size: int,
        dimension: int,
        bounds: Bounds,
        random_state: np.random.RandomState,
    ) -> "Population":
        """Draws population_size individuals uniformly in the bounds, without fitness"""
        if population_size < MIN_POPULATION_SIZE:
            raise errors.ConfigurationError(
                f"Population size must be at least {MIN_POPULATION_SIZE} (got {population_size})"
            )
        if dimension < 1:
            raise errors.ConfigurationError(f"Number of dimensions must be positive (got {dimension})")
        data = bounds.sample(random_state, size=(population_size, dimension))
        return cls(Individual(row) for row in data)

    @property
    def dimension(self) -> int:
        return self._individuals[0].dimension

    def __len__(self) -> int:
        return len(self._individuals)

    def __getitem__(self, index: int) -> Individual:
        return self._individuals[index]

    def __iter__(self) -> tp.Iterator[Individual]:
        return iter(self._individuals)

    def positions(self) -> np.ndarray:
        """Read-only (population_size, dimension) copy of all positions"""
        snapshot = np.array([ind.position for ind in self._individuals], dtype=float)
        snapshot.setflags(write=False)
        return snapshot

    def fitnesses(self) -> np.ndarray:
        """Fitness of all individuals, with NaN for those not evaluated yet"""
        return np.array([np.nan if ind.fitness is None else ind.fitness for ind in self._individuals])

    def best(self) -> Individual:
        """Individual with minimal fitness (first one in case of ties)"""
        return min(self._individuals, key=lambda ind: ind.loss)

    def sorted(self) -> tp.List[tp.Tuple[int, Individual]]:
        """(index, individual) pairs from best to worst fitness"""
        return sorted(enumerate(self._individuals), key=lambda x: x[1].loss)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={len(self)}, dimension={self.dimension})"
