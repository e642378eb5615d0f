# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .base import OptimizationLoop
from .base import RunConfig
from .population import Bounds
from .population import Individual
from .population import Population
from .fitness import Evaluator
from .fitness import dot_product
from .differentialevolution import DifferentialMutation
