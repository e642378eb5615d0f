# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import os
import sys
import logging
import argparse
import diffevo.common.typing as tp
from diffevo.common import errors
from diffevo.optimization import base
from diffevo.optimization import callbacks
from diffevo.optimization.population import Bounds
from diffevo.optimization.population import Population


DEFAULT_TARGET = (4.0, -2.0, 3.5, 5.0, -11.0, -4.7, -9.0, 100.0, -23.0)


def _float_list(string: str) -> tp.List[float]:
    try:
        return [float(x) for x in string.split(",") if x.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected comma-separated floats, got {string!r}") from e


def _non_negative_int(string: str) -> int:
    value = int(string)
    if value < 0:
        raise argparse.ArgumentTypeError(f"Expected a non-negative integer, got {value}")
    return value


def get_args(argv: tp.Optional[tp.Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="diffevo", description="Minimize the dot product with a target vector through differential evolution."
    )
    parser.add_argument(
        "-g", "--generations", type=int, default=1000, help="Number of generations to run the optimization"
    )
    parser.add_argument(
        "-p", "--pop_sz", type=int, default=20, help="Population size (number of individuals)"
    )
    parser.add_argument(
        "-l",
        "--lower_limit",
        type=float,
        default=-5.0,
        help="Lower limit for random generation of individual positions",
    )
    parser.add_argument(
        "-u",
        "--upper_limit",
        type=float,
        default=5.0,
        help="Upper limit for random generation of individual positions",
    )
    parser.add_argument(
        "--mutation_ratio", type=float, default=0.5, help="Probability for each dimension to be mutated"
    )
    parser.add_argument(
        "--mutation_factor", type=float, default=0.8, help="Scale applied to the donor difference vector"
    )
    parser.add_argument(
        "--target",
        type=_float_list,
        default=list(DEFAULT_TARGET),
        help="Comma-separated target vector defining the fitness (sum of its product with the position)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Use a seed for reproducibility",
    )
    parser.add_argument(
        "--num_workers",
        type=int,
        default=1,
        help="Numbers of threads to use for evaluation and mutation",
    )
    parser.add_argument(
        "--verbosity", type=int, default=0, help="0: no print, 1: best fitness, 2: best fitness and individual"
    )
    parser.add_argument(
        "--top", type=_non_negative_int, default=2, help="Number of best individuals to print at the end"
    )
    parser.add_argument("--no_progress", action="store_true", help="Deactivate the progress bar")
    return parser.parse_args(argv)


def print_started(loop: base.OptimizationLoop) -> None:
    print(f"Population started: {loop.config.population_size} individuals with {loop.dimension} dimensions")


def print_top(population: Population, top: int) -> None:
    for index, individual in population.sorted()[:top]:
        print(f"{index} - {individual.fitness}")


def main(argv: tp.Optional[tp.Sequence[str]] = None) -> base.OptimizationLoop:
    args = get_args(argv)
    try:
        config = base.RunConfig(
            population_size=args.pop_sz,
            generations=args.generations,
            bounds=Bounds(args.lower_limit, args.upper_limit),
            mutation_ratio=args.mutation_ratio,
            mutation_factor=args.mutation_factor,
            verbosity=args.verbosity,
            num_workers=args.num_workers,
            seed=args.seed,
        )
        loop = base.OptimizationLoop(args.target, config)
    except errors.DiffEvoValueError as e:
        sys.exit(f"Configuration error: {e}")
    progress = None
    if not args.no_progress:
        progress = callbacks.ProgressBar()
        loop.register_callback("generation", progress)
    loop.register_callback("initialization", print_started)
    loop.register_callback("generation", callbacks.GenerationLogger(log_level=logging.DEBUG))
    try:
        population = loop.run()
    finally:
        if progress is not None:
            progress.close()
    print_top(population, args.top)
    return loop


if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("LOGLEVEL", "WARNING"))
    main()
