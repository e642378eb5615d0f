# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import warnings
import numpy as np
import diffevo.common.typing as tp
from diffevo.common import errors
from .population import Population
from . import utils


logger = logging.getLogger(__name__)


def dot_product(target: np.ndarray, position: np.ndarray) -> float:
    """Fitness as the sum of the elementwise product of target and position (lower is better)"""
    if len(target) != len(position):
        raise errors.DimensionMismatchError(
            f"Target has {len(target)} dimensions while position has {len(position)}"
        )
    return float(np.sum(np.multiply(target, position)))


class Evaluator:
    """Computes and caches the fitness of the individuals of a population.

    Parameters
    ----------
    target: array-like
        1D target vector defining the fitness landscape
    fitness_model: callable
        pure function :code:`fitness_model(target, position) -> float`

    Note
    ----
    Evaluations are submitted to an executor and only written back once all
    of them are gathered, from the calling thread.
    """

    def __init__(self, target: tp.ArrayLike, fitness_model: tp.FitnessModel = dot_product) -> None:
        self.target = np.array(target, dtype=float, copy=True)
        if self.target.ndim != 1:
            raise errors.DimensionMismatchError(f"Target must be a 1D vector (got shape {self.target.shape})")
        self.target.setflags(write=False)
        self.fitness_model = fitness_model
        self.num_evaluations = 0

    @property
    def dimension(self) -> int:
        return self.target.size

    def evaluate(self, position: tp.ArrayLike) -> float:
        return float(self.fitness_model(self.target, np.asarray(position)))

    def __call__(
        self,
        population: Population,
        evaluate_all: bool = False,
        executor: tp.Optional[tp.ExecutorLike] = None,
    ) -> int:
        """Evaluates individuals without fitness (or all of them if evaluate_all)

        Returns
        -------
        int
            the number of evaluated individuals
        """
        if population.dimension != self.dimension:
            raise errors.DimensionMismatchError(
                f"Target has {self.dimension} dimensions while population has {population.dimension}"
            )
        indices = [k for k, ind in enumerate(population) if evaluate_all or ind.fitness is None]
        values = utils.gather(executor, self.evaluate, ((population[k].position,) for k in indices))
        for k, value in zip(indices, values):
            population[k].set_fitness(value)
        self.num_evaluations += len(indices)
        if any(np.isnan(v) for v in values):
            warnings.warn("Some individuals have a NaN fitness", errors.BadFitnessWarning)
        logger.debug("Evaluated %s individual(s)", len(indices))
        return len(indices)
