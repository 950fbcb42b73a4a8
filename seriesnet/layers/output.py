"""Classification output layer."""
from __future__ import annotations
from typing import Optional, Sequence

from .. import cuda
from ..errors import InvalidOperationError
from .base import Layer


def bound_away_from_zero(X):
    """Map values in ``[0, eps)`` to ``eps`` and values in ``(-eps, 0)`` to ``-eps``."""
    xp = cuda.get_array_module(X)
    eps = xp.finfo(X.dtype).eps
    X = xp.where((X >= 0) & (X < eps), eps, X)
    X = xp.where((X > -eps) & (X < 0), -eps, X)
    return X.astype(X.dtype, copy=False)


class CrossEntropy(Layer):
    """Cross entropy loss over ``(1, 1, num_classes, N)`` predictions.

    The layer is the last of a network: it passes predictions through and
    exposes the loss and its derivative via ``forward_loss`` and
    ``backward_loss``. It must never receive ``backward`` or ``gradients``.
    """
    default_name = 'classoutput'

    def __init__(self, num_classes: Optional[int] = None, name: str = '',
                 class_names: Optional[Sequence] = None):
        super().__init__(name)
        self.num_classes = num_classes
        self.class_names = list(class_names) if class_names is not None else []

    @property
    def has_size_determined(self) -> bool:
        return self.num_classes is not None

    def forward(self, X):
        return X, None

    def backward(self, X, Z, dZ, memory):
        raise InvalidOperationError("backward cannot be called on CrossEntropy layers")

    def gradients(self, X, dZ):
        raise InvalidOperationError("gradients cannot be called on CrossEntropy layers")

    def forward_loss(self, Y, T):
        """Cross entropy averaged over the observations (axis 3)."""
        xp = cuda.get_array_module(Y)
        num_observations = Y.shape[3]
        return -xp.sum(T * xp.log(bound_away_from_zero(Y))) / num_observations

    def backward_loss(self, Y, T):
        return -T / bound_away_from_zero(Y)

    def infer_size(self, input_size):
        if self.has_size_determined:
            return self
        layer = self._copy()
        layer.num_classes = int(input_size[2]) if len(input_size) >= 3 else 1
        return layer

    def is_valid_input_size(self, input_size):
        if not self.has_size_determined:
            return True
        return len(input_size) == 3 and tuple(input_size) == (1, 1, self.num_classes)

    def get_config(self):
        return {
            'name': self.name,
            'num_classes': self.num_classes,
            # numpy scalars are not JSON serializable
            'class_names': [c.item() if hasattr(c, 'item') else c for c in self.class_names],
        }
