"""Dropout and the identity layer."""
from __future__ import annotations
import numpy as np
from typing import Optional

from .. import cuda
from .base import Layer


class Dropout(Layer):
    """Inverted dropout.

    ``forward`` zeroes each element with probability ``probability`` and
    scales the survivors by ``1 / (1 - probability)``; the scaled mask is the
    memory handed to ``backward``. ``predict`` is the identity.
    """
    default_name = 'dropout'

    def __init__(self, probability: float = 0.5, name: str = '', rng: Optional[np.random.Generator] = None):
        super().__init__(name)
        if not 0 <= probability < 1:
            raise ValueError(f"probability must be in [0, 1), got {probability}")
        self.probability = probability
        self.rng = rng or np.random.default_rng()

    def forward(self, X):
        keep = self.rng.random(X.shape) > self.probability
        mask = (keep / (1 - self.probability)).astype(X.dtype)
        if cuda.is_cuda_array(X):
            mask = cuda.to_gpu(mask)
        return X * mask, mask

    def backward(self, X, Z, dZ, memory):
        return dZ * memory

    def predict(self, X):
        return X

    def get_config(self):
        return {'name': self.name, 'probability': self.probability}


class NullLayer(Layer):
    """Passes its input through unchanged."""
    default_name = 'null'

    def forward(self, X):
        return X, None

    def backward(self, X, Z, dZ, memory):
        return dZ
