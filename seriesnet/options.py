"""Training options for stochastic gradient descent with momentum."""
from __future__ import annotations
import os
import numbers
from typing import Dict, Any

SHUFFLE_VALUES = ('once', 'never')
SCHEDULE_VALUES = ('none', 'piecewise')
EXECUTION_ENVIRONMENTS = ('auto', 'cpu', 'gpu')


def _is_real(x) -> bool:
    return isinstance(x, numbers.Real) and not isinstance(x, bool) and x == x and abs(x) != float('inf')


def _check_between_zero_and_one(name, x):
    if not (_is_real(x) and 0 <= x <= 1):
        raise ValueError(f"{name} must be a real number between 0 and 1, got {x!r}")


def _check_positive(name, x):
    if not (_is_real(x) and x > 0):
        raise ValueError(f"{name} must be a finite positive number, got {x!r}")


def _check_non_negative(name, x):
    if not (_is_real(x) and x >= 0):
        raise ValueError(f"{name} must be a finite non-negative number, got {x!r}")


def _check_positive_integer(name, x):
    if not (isinstance(x, numbers.Integral) and not isinstance(x, bool) and x > 0):
        raise ValueError(f"{name} must be a positive integer, got {x!r}")


def _check_choice(name, x, choices):
    if x not in choices:
        raise ValueError(f"{name} must be one of {list(choices)}, got {x!r}")


class TrainingOptionsSGDM:
    """Validated, read-only-by-convention bag of training hyperparameters."""
    def __init__(self, momentum: float = 0.9, initial_learn_rate: float = 0.01,
                 learn_rate_schedule: str = 'none', learn_rate_drop_factor: float = 0.1,
                 learn_rate_drop_period: int = 10, l2_regularization: float = 1e-4,
                 max_epochs: int = 30, mini_batch_size: int = 128, verbose: bool = True,
                 shuffle: str = 'once', checkpoint_path: str = '', execution_environment: str = 'auto'):
        _check_between_zero_and_one('momentum', momentum)
        _check_positive('initial_learn_rate', initial_learn_rate)
        _check_choice('learn_rate_schedule', learn_rate_schedule, SCHEDULE_VALUES)
        _check_between_zero_and_one('learn_rate_drop_factor', learn_rate_drop_factor)
        _check_positive_integer('learn_rate_drop_period', learn_rate_drop_period)
        _check_non_negative('l2_regularization', l2_regularization)
        _check_positive_integer('max_epochs', max_epochs)
        _check_positive_integer('mini_batch_size', mini_batch_size)
        if not isinstance(verbose, (bool, int)) or verbose not in (0, 1):
            raise ValueError(f"verbose must be True or False, got {verbose!r}")
        _check_choice('shuffle', shuffle, SHUFFLE_VALUES)
        if not isinstance(checkpoint_path, str) or (checkpoint_path and not os.path.isdir(checkpoint_path)):
            raise ValueError(f"checkpoint_path must be '' or an existing directory, got {checkpoint_path!r}")
        _check_choice('execution_environment', execution_environment, EXECUTION_ENVIRONMENTS)

        self.momentum = momentum
        self.initial_learn_rate = initial_learn_rate
        self.learn_rate_schedule = learn_rate_schedule
        self.learn_rate_drop_factor = learn_rate_drop_factor
        self.learn_rate_drop_period = learn_rate_drop_period
        self.l2_regularization = l2_regularization
        self.max_epochs = max_epochs
        self.mini_batch_size = mini_batch_size
        self.verbose = bool(verbose)
        self.shuffle = shuffle
        self.checkpoint_path = checkpoint_path
        self.execution_environment = execution_environment

    @property
    def learn_rate_schedule_settings(self) -> Dict[str, Any]:
        """Keyword arguments for ``schedules.create_schedule``."""
        if self.learn_rate_schedule == 'piecewise':
            return {'method': 'piecewise', 'drop_factor': self.learn_rate_drop_factor,
                    'drop_period': self.learn_rate_drop_period}
        return {'method': 'none'}

    def to_config(self) -> Dict[str, Any]:
        return dict(vars(self))

    def __repr__(self):
        items = ', '.join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"TrainingOptionsSGDM({items})"


def training_options(solver: str = 'sgdm', **kwargs) -> TrainingOptionsSGDM:
    """Create training options; only the ``'sgdm'`` solver is available."""
    if solver != 'sgdm':
        raise ValueError(f"Unknown solver '{solver}'. Available: ['sgdm']")
    return TrainingOptionsSGDM(**kwargs)
