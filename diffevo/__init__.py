# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .common import typing as typing
from .common import errors as errors
from .optimization import OptimizationLoop as OptimizationLoop
from .optimization import RunConfig as RunConfig
from .optimization import Bounds as Bounds
from .optimization import callbacks as callbacks


__all__ = ["OptimizationLoop", "RunConfig", "Bounds", "callbacks", "errors", "typing"]


__version__ = "0.1.0"
