# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.


# base classes


class DiffEvoError(Exception):
    """Base class for error raised by diffevo"""


class DiffEvoWarning(Warning):
    pass


# errors
# pylint: disable=too-many-ancestors


class EarlyStopping(StopIteration, DiffEvoError):
    """Stops the optimization loop if raised (between two generations)"""


class DiffEvoRuntimeError(RuntimeError, DiffEvoError):
    """Runtime error raised by diffevo"""


class DiffEvoValueError(ValueError, DiffEvoError):
    """Value error raised by diffevo"""


class ConfigurationError(DiffEvoValueError):
    """Run settings which cannot lead to a valid optimization
    (population too small, inverted bounds, mutation ratio out of [0, 1] etc)
    """


class DimensionMismatchError(DiffEvoValueError):
    """Target vector and positions do not have the same number of dimensions"""


# warnings


class DiffEvoRuntimeWarning(RuntimeWarning, DiffEvoWarning):
    """Runtime warning raised by diffevo"""


class InefficientSettingsWarning(DiffEvoRuntimeWarning):
    """Optimization settings are not optimal for the optimization loop"""


class BadFitnessWarning(DiffEvoRuntimeWarning):
    """Computed fitness is unhelpful (NaN)"""
