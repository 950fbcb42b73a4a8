"""Max and average pooling layers."""
from __future__ import annotations

from .. import strategies
from .base import Layer, pair


class _Pooling2D(Layer):
    def __init__(self, pool_size, stride=1, padding=0, name: str = ''):
        super().__init__(name)
        self.pool_size = pair(pool_size)
        self.stride = pair(stride)
        self.padding = pair(padding)

    def forward(self, X):
        return self._strategy.forward(X, self.pool_size, self.padding, self.stride)

    def backward(self, X, Z, dZ, memory):
        return self._strategy.backward(X, Z, dZ, self.pool_size, self.padding, self.stride)

    def forward_propagate_size(self, input_size):
        h, w = input_size[:2]
        out_h = (h + 2 * self.padding[0] - self.pool_size[0]) // self.stride[0] + 1
        out_w = (w + 2 * self.padding[1] - self.pool_size[1]) // self.stride[1] + 1
        channels = input_size[2] if len(input_size) >= 3 else 1
        return (out_h, out_w, channels)

    def is_valid_input_size(self, input_size):
        return all(p <= s + 2 * pad for p, s, pad in zip(self.pool_size, input_size[:2], self.padding))

    def get_config(self):
        return {
            'name': self.name,
            'pool_size': list(self.pool_size),
            'stride': list(self.stride),
            'padding': list(self.padding),
        }


class MaxPooling2D(_Pooling2D):
    """Max pooling. Padding never wins the max: it is filled with the most negative finite value."""
    default_name = 'maxpool'
    host_strategy = strategies.MaxPooling2DHostStrategy
    gpu_strategy = strategies.MaxPooling2DGPUStrategy


class AveragePooling2D(_Pooling2D):
    """Average pooling. Padding counts as zeros and every window is divided by its full area."""
    default_name = 'avgpool'
    host_strategy = strategies.AveragePooling2DHostStrategy
    gpu_strategy = strategies.AveragePooling2DGPUStrategy
