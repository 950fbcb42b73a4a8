"""Element-wise and channel-wise activation layers."""
from __future__ import annotations

from .. import strategies
from .base import Layer


class ReLU(Layer):
    default_name = 'relu'
    host_strategy = strategies.ReLUHostStrategy
    gpu_strategy = strategies.ReLUGPUStrategy

    def forward(self, X):
        return self._strategy.forward(X)

    def backward(self, X, Z, dZ, memory):
        return self._strategy.backward(X, Z, dZ)


class Softmax(Layer):
    """Softmax over the channel axis.

    Only accepts inputs that are spatially a vector (height or width is 1),
    typically the ``(1, 1, C)`` output of a fully connected layer.
    """
    default_name = 'softmax'
    host_strategy = strategies.SoftmaxHostStrategy
    gpu_strategy = strategies.SoftmaxGPUStrategy

    def forward(self, X):
        return self._strategy.forward(X)

    def backward(self, X, Z, dZ, memory):
        return self._strategy.backward(Z, dZ)

    def is_valid_input_size(self, input_size):
        return len(input_size) <= 3 and min(input_size[:2]) == 1
