"""Convolution and fully connected layers."""
from __future__ import annotations
import numpy as np
from typing import Optional, Sequence, Union

from .. import cuda
from ..errors import ShapeMismatchError, SizeNotDeterminedError
from .. import strategies
from .base import WeightedLayer, pair


def _num_channels_from_input_size(input_size) -> int:
    # a 2-D size means a single channel
    return int(input_size[2]) if len(input_size) >= 3 else 1


class Convolution2D(WeightedLayer):
    """2-D convolution with optional two filter groups.

    ``num_filters`` is either an int or a pair ``(f1, f2)``. With a pair, the
    input channels are split into two equal halves; the first half is
    convolved with the first ``f1`` filters and the second half with the
    remaining ``f2``, and the two results are stacked along the channel
    axis. ``num_channels`` is then the channel count of one half.

    Weights have size ``(filter_h, filter_w, num_channels, sum(num_filters))``
    and the bias ``(1, 1, sum(num_filters))``.
    """
    default_name = 'conv'
    host_strategy = strategies.Convolution2DHostStrategy
    gpu_strategy = strategies.Convolution2DGPUStrategy

    def __init__(self, filter_size, num_filters: Union[int, Sequence[int]], stride=1, padding=0,
                 num_channels: Optional[int] = None, name: str = '',
                 weight_learn_rate_factor: float = 1.0, bias_learn_rate_factor: float = 1.0,
                 weight_l2_factor: float = 1.0, bias_l2_factor: float = 1.0,
                 weights=None, bias=None, rng: Optional[np.random.Generator] = None):
        super().__init__(name, weight_learn_rate_factor, bias_learn_rate_factor,
                         weight_l2_factor, bias_l2_factor, rng)
        self.filter_size = pair(filter_size)
        if np.isscalar(num_filters):
            self.num_filters = (int(num_filters),)
        else:
            self.num_filters = tuple(int(f) for f in num_filters)
            if len(self.num_filters) != 2:
                raise ValueError(f"Filter groups need exactly two filter counts, got {self.num_filters}")
        self.stride = pair(stride)
        self.padding = pair(padding)
        if num_channels is None and weights is not None:
            num_channels = int(np.shape(weights)[2])
        self.num_channels = num_channels
        if weights is not None:
            self.weights = weights
        if bias is not None:
            self.bias = bias

    @property
    def using_filter_groups(self) -> bool:
        return len(self.num_filters) == 2

    @property
    def total_num_filters(self) -> int:
        return sum(self.num_filters)

    @property
    def has_size_determined(self) -> bool:
        return self.num_channels is not None

    def weights_size(self):
        return self.filter_size + (self.num_channels, self.total_num_filters)

    def bias_size(self):
        return (1, 1, self.total_num_filters)

    # ------------------------------------------------------------------
    def forward(self, X):
        if self.using_filter_groups:
            X1, X2 = self._split_data(X)
            W1, W2 = self._split_filters(self.weights, axis=3)
            b1, b2 = self._split_filters(self.bias, axis=2)
            Z1, _ = self._do_forward(X1, W1, b1)
            Z2, _ = self._do_forward(X2, W2, b2)
            return self._concat(Z1, Z2, axis=2), None
        return self._do_forward(X, self.weights, self.bias)

    def backward(self, X, Z, dZ, memory):
        if self.using_filter_groups:
            X1, X2 = self._split_data(X)
            W1, W2 = self._split_filters(self.weights, axis=3)
            dZ1, dZ2 = self._split_filters(dZ, axis=2)
            dX1 = self._strategy.backward(X1, W1, dZ1, self.padding, self.stride)
            dX2 = self._strategy.backward(X2, W2, dZ2, self.padding, self.stride)
            return self._concat(dX1, dX2, axis=2)
        return self._strategy.backward(X, self.weights, dZ, self.padding, self.stride)

    def gradients(self, X, dZ):
        if self.using_filter_groups:
            X1, X2 = self._split_data(X)
            W1, W2 = self._split_filters(self.weights, axis=3)
            dZ1, dZ2 = self._split_filters(dZ, axis=2)
            dW1, db1 = self._strategy.gradients(X1, W1, dZ1, self.padding, self.stride)
            dW2, db2 = self._strategy.gradients(X2, W2, dZ2, self.padding, self.stride)
            return [self._concat(dW1, dW2, axis=3), self._concat(db1, db2, axis=2)]
        return self._strategy.gradients(X, self.weights, dZ, self.padding, self.stride)

    def _do_forward(self, X, weights, bias):
        return self._strategy.forward(X, weights, bias, self.padding, self.stride)

    def _split_data(self, X):
        c = self.num_channels
        return X[:, :, :c], X[:, :, c:2 * c]

    def _split_filters(self, A, axis):
        f1, f2 = self.num_filters
        index = [slice(None)] * A.ndim
        first, second = list(index), list(index)
        first[axis] = slice(0, f1)
        second[axis] = slice(f1, f1 + f2)
        return A[tuple(first)], A[tuple(second)]

    @staticmethod
    def _concat(A, B, axis):
        xp = cuda.get_array_module(A)
        return xp.concatenate((A, B), axis=axis)

    # ------------------------------------------------------------------
    def forward_propagate_size(self, input_size):
        h, w = input_size[:2]
        out_h = (h + 2 * self.padding[0] - self.filter_size[0]) // self.stride[0] + 1
        out_w = (w + 2 * self.padding[1] - self.filter_size[1]) // self.stride[1] + 1
        return (out_h, out_w, self.total_num_filters)

    def infer_size(self, input_size):
        if self.has_size_determined:
            return self
        num_channels = _num_channels_from_input_size(input_size)
        if self.using_filter_groups:
            if num_channels % 2:
                raise ShapeMismatchError(
                    f"Convolution2D '{self.name}': two filter groups need an even number of channels, "
                    f"got {num_channels}")
            num_channels //= 2
        layer = self._copy()
        layer.num_channels = num_channels
        return layer

    def is_valid_input_size(self, input_size):
        image_size = input_size[:2]
        fits = all(f <= s + 2 * p for f, s, p in zip(self.filter_size, image_size, self.padding))
        if not self.has_size_determined:
            return fits
        groups = len(self.num_filters)
        return fits and groups * self.num_channels == _num_channels_from_input_size(input_size)

    def get_config(self):
        config = super().get_config()
        config.update({
            'filter_size': list(self.filter_size),
            'num_filters': self.num_filters[0] if len(self.num_filters) == 1 else list(self.num_filters),
            'stride': list(self.stride),
            'padding': list(self.padding),
            'num_channels': self.num_channels,
        })
        return config


class FullyConnected(WeightedLayer):
    """Fully connected layer, computed as a convolution whose filter covers the whole input.

    Weights have size ``input_size + (output_size,)`` and the bias
    ``(1, 1, output_size)``; the layer output is ``(1, 1, output_size, N)``.
    A 2-D weight matrix of size ``(output_size, h*w*c)`` may also be assigned,
    its columns ordered like a C-order flattening of ``(h, w, c)``.
    """
    default_name = 'fc'
    host_strategy = strategies.Convolution2DHostStrategy
    gpu_strategy = strategies.Convolution2DGPUStrategy

    NO_PADDING = (0, 0)
    UNIT_STRIDE = (1, 1)

    def __init__(self, output_size: int, input_size=None, name: str = '',
                 weight_learn_rate_factor: float = 1.0, bias_learn_rate_factor: float = 1.0,
                 weight_l2_factor: float = 1.0, bias_l2_factor: float = 1.0,
                 weights=None, bias=None, rng: Optional[np.random.Generator] = None):
        super().__init__(name, weight_learn_rate_factor, bias_learn_rate_factor,
                         weight_l2_factor, bias_l2_factor, rng)
        self.output_size = int(output_size)
        self.input_size = None if input_size is None else self._as_input_size(input_size)
        if weights is not None:
            self.weights = weights
        if bias is not None:
            self.bias = bias

    @staticmethod
    def _as_input_size(input_size):
        input_size = tuple(int(s) for s in input_size)
        return input_size + (1,) if len(input_size) == 2 else input_size[:3]

    @property
    def has_size_determined(self) -> bool:
        return self.input_size is not None

    def weights_size(self):
        return self.input_size + (self.output_size,)

    def bias_size(self):
        return (1, 1, self.output_size)

    def _coerce_weights(self, value):
        if value.ndim == 2:
            num_inputs = int(np.prod(self.input_size)) if self.has_size_determined else value.shape[1]
            if tuple(value.shape) != (self.output_size, num_inputs):
                raise ShapeMismatchError(
                    f"FullyConnected '{self.name}': expected a weight matrix of size "
                    f"{(self.output_size, num_inputs)}, got {tuple(value.shape)}")
            if self.has_size_determined:
                return value.T.reshape(self.weights_size())
        elif value.ndim == 4 and value.shape[3] != self.output_size:
            raise ShapeMismatchError(
                f"FullyConnected '{self.name}': expected {self.output_size} filters, got {value.shape[3]}")
        return value

    def _coerce_bias(self, value):
        if value.ndim <= 2:
            if value.size != self.output_size:
                raise ShapeMismatchError(
                    f"FullyConnected '{self.name}': expected {self.output_size} bias values, got {value.size}")
            return value.reshape(self.bias_size())
        return value

    # ------------------------------------------------------------------
    def forward(self, X):
        return self._strategy.forward(X, self.weights, self.bias, self.NO_PADDING, self.UNIT_STRIDE)

    def backward(self, X, Z, dZ, memory):
        return self._strategy.backward(X, self.weights, dZ, self.NO_PADDING, self.UNIT_STRIDE)

    def gradients(self, X, dZ):
        return self._strategy.gradients(X, self.weights, dZ, self.NO_PADDING, self.UNIT_STRIDE)

    # ------------------------------------------------------------------
    def forward_propagate_size(self, input_size):
        if not self.has_size_determined:
            raise SizeNotDeterminedError(
                f"FullyConnected '{self.name}': an input size must be defined in order to call "
                "forward_propagate_size")
        h, w = input_size[:2]
        return (h - self.input_size[0] + 1, w - self.input_size[1] + 1, self.output_size)

    def infer_size(self, input_size):
        if self.has_size_determined:
            return self
        layer = self._copy()
        layer.input_size = self._as_input_size(input_size)
        # weights preset before the size was known are validated now
        if layer.weights is not None:
            layer.weights = layer.weights
        return layer

    def is_valid_input_size(self, input_size):
        return not self.has_size_determined or self._as_input_size(input_size) == self.input_size

    def get_config(self):
        config = super().get_config()
        config.update({
            'output_size': self.output_size,
            'input_size': None if self.input_size is None else list(self.input_size),
        })
        return config
