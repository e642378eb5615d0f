# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import warnings
import numpy as np
import diffevo.common.typing as tp
from diffevo.common import errors
from .population import Bounds
from .population import Population
from .fitness import Evaluator
from . import utils


logger = logging.getLogger(__name__)
_Proposal = tp.Optional[tp.Tuple[np.ndarray, float]]


class DifferentialMutation:
    """Mutation and greedy selection step of differential evolution.

    For each individual, a random subset of dimensions is selected, and each selected
    dimension is replaced by :code:`a + F * (b - c)` where :code:`a`, :code:`b` and
    :code:`c` are 3 other individuals of the population picked without replacement.
    The trial is clipped to the bounds, evaluated, and replaces the individual only
    if its fitness is strictly better.

    Parameters
    ----------
    bounds: Bounds
        box constraints used for repairing the trials
    mutation_ratio: float
        probability for each dimension to be mutated, in [0, 1]
    mutation_factor: float
        differential weight F applied to the difference between the donors
    """

    num_donors = 3

    def __init__(self, bounds: Bounds, mutation_ratio: float = 0.5, mutation_factor: float = 0.8) -> None:
        if not 0 <= mutation_ratio <= 1:
            raise errors.ConfigurationError(f"Mutation ratio must be in [0, 1] (got {mutation_ratio})")
        self.bounds = bounds
        self.mutation_ratio = float(mutation_ratio)
        self.mutation_factor = float(mutation_factor)

    def select_dimensions(self, random_state: np.random.RandomState, dimension: int) -> np.ndarray:
        """Boolean mask of the dimensions to mutate"""
        return random_state.uniform(0, 1, size=dimension) < self.mutation_ratio

    def select_donors(
        self, random_state: np.random.RandomState, index: int, population_size: int
    ) -> tp.Tuple[int, int, int]:
        """Draws 3 distinct indices different from index"""
        if population_size - 1 < self.num_donors:
            raise errors.ConfigurationError(
                f"Population of size {population_size} is too small to draw {self.num_donors} donors"
            )
        others = np.delete(np.arange(population_size), index)
        a, b, c = random_state.choice(others, size=self.num_donors, replace=False).tolist()
        return a, b, c

    def propose(
        self, snapshot: np.ndarray, index: int, random_state: np.random.RandomState
    ) -> tp.Optional[np.ndarray]:
        """Builds the trial vector of individual #index from the generation snapshot

        Returns
        -------
        np.ndarray or None
            the trial, or None if no dimension was selected for mutation
        """
        mask = self.select_dimensions(random_state, snapshot.shape[1])
        if not mask.any():
            return None
        a, b, c = (snapshot[k] for k in self.select_donors(random_state, index, snapshot.shape[0]))
        trial = np.array(snapshot[index], copy=True)
        trial[mask] = self.bounds.clip(a[mask] + self.mutation_factor * (b[mask] - c[mask]))
        return trial

    def _propose_and_evaluate(
        self, snapshot: np.ndarray, index: int, seed: int, evaluator: Evaluator
    ) -> _Proposal:
        trial = self.propose(snapshot, index, np.random.RandomState(seed))
        if trial is None:
            return None
        return trial, evaluator.evaluate(trial)

    def step(
        self,
        population: Population,
        evaluator: Evaluator,
        seeds: tp.Sequence[int],
        executor: tp.Optional[tp.ExecutorLike] = None,
    ) -> int:
        """Performs one generation of mutation and selection, in place.

        Parameters
        ----------
        population: Population
            evaluated population, updated in place
        evaluator: Evaluator
            evaluator for the trials
        seeds: sequence of int
            one random seed per individual, so that results do not depend on the
            execution order of the tasks
        executor: ExecutorLike
            executor dispatching the per-individual tasks (sequential if None)

        Returns
        -------
        int
            the number of accepted trials
        """
        if len(seeds) != len(population):
            raise errors.DiffEvoValueError(f"Expected {len(population)} seeds but got {len(seeds)}")
        # all tasks read the same start-of-generation snapshot, updates are applied after gathering
        snapshot = population.positions()
        proposals: tp.List[_Proposal] = utils.gather(
            executor,
            self._propose_and_evaluate,
            ((snapshot, index, seed, evaluator) for index, seed in enumerate(seeds)),
        )
        if any(proposal is not None and np.isnan(proposal[1]) for proposal in proposals):
            warnings.warn("Some trials have a NaN fitness", errors.BadFitnessWarning)
        accepted = 0
        for individual, proposal in zip(population, proposals):
            if proposal is not None and individual.challenge(*proposal):
                accepted += 1
        evaluator.num_evaluations += sum(proposal is not None for proposal in proposals)
        logger.debug("Accepted %s trial(s) out of %s individuals", accepted, len(population))
        return accepted

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(bounds={self.bounds}, mutation_ratio={self.mutation_ratio}, "
            f"mutation_factor={self.mutation_factor})"
        )
