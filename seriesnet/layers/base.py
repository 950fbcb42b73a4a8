"""Layer contract shared by every layer in a series network.

Tensors flowing between layers are 4-D arrays laid out height x width x
channel x observation. Sizes handed to the shape-inference methods are
``(height, width, channels)`` tuples.

Methods that change how a layer is set up (``infer_size``,
``initialize_learnable_parameters``, ``prepare_for_training`` ...) return a
new layer and leave the receiver untouched.
"""
from __future__ import annotations
import copy
import numpy as np
from typing import Optional, Tuple, Dict, Any, List

from .. import cuda
from ..errors import ShapeMismatchError
from ..learnable import PredictionLearnableParameter

Size = Tuple[int, int, int]


def pair(value) -> Tuple[int, int]:
    """Expand a scalar into a ``(vertical, horizontal)`` pair."""
    if np.isscalar(value):
        return (int(value), int(value))
    value = tuple(int(v) for v in value)
    if len(value) != 2:
        raise ValueError(f"Expected a scalar or a [vertical horizontal] pair, got {value}")
    return value


def gaussian(shape, precision, rng: Optional[np.random.Generator] = None, sigma: float = 0.01):
    rng = rng or np.random.default_rng()
    return precision.cast(rng.standard_normal(shape) * sigma)


def zeros(shape, precision):
    return precision.cast(np.zeros(shape))


class Layer:
    """Abstract layer base class."""
    default_name = 'layer'
    host_strategy = None
    gpu_strategy = None

    def __init__(self, name: str = ''):
        self.name = name
        self.learnable_parameters: List = []
        self._strategy = self.host_strategy() if self.host_strategy is not None else None

    # ------------------------------------------------------------------
    # computation
    # ------------------------------------------------------------------
    def forward(self, X):
        """Return ``(Z, memory)``; ``memory`` is handed back to ``backward``."""
        raise NotImplementedError

    def backward(self, X, Z, dZ, memory):
        """Derivative of the loss w.r.t. ``X`` given the derivative w.r.t. ``Z``."""
        raise NotImplementedError

    def gradients(self, X, dZ) -> list:
        """One gradient per learnable parameter, in parameter order."""
        return []

    def predict(self, X):
        return self.forward(X)[0]

    # ------------------------------------------------------------------
    # sizes
    # ------------------------------------------------------------------
    @property
    def has_size_determined(self) -> bool:
        return True

    def forward_propagate_size(self, input_size: Size) -> Size:
        return tuple(input_size)

    def infer_size(self, input_size: Size) -> 'Layer':
        return self

    def is_valid_input_size(self, input_size: Size) -> bool:
        return True

    def initialize_learnable_parameters(self, precision) -> 'Layer':
        return self

    # ------------------------------------------------------------------
    # representation and placement
    # ------------------------------------------------------------------
    @property
    def uses_gpu(self) -> bool:
        return self._strategy is not None and self._strategy.use_gpu

    def _copy(self) -> 'Layer':
        layer = copy.copy(self)
        layer.learnable_parameters = list(self.learnable_parameters)
        return layer

    def prepare_for_training(self) -> 'Layer':
        layer = self._copy()
        layer.learnable_parameters = [p.to_training(self.uses_gpu) for p in self.learnable_parameters]
        return layer

    def prepare_for_prediction(self) -> 'Layer':
        layer = self._copy()
        layer.learnable_parameters = [p.to_prediction(self.uses_gpu) for p in self.learnable_parameters]
        return layer

    def _placed(self, strategy_cls, use_gpu: bool) -> 'Layer':
        layer = self._copy()
        if strategy_cls is not None:
            layer._strategy = strategy_cls()
        layer.learnable_parameters = [
            p.with_device(use_gpu) if isinstance(p, PredictionLearnableParameter) else p.to_training(use_gpu)
            for p in self.learnable_parameters
        ]
        return layer

    def setup_for_host_prediction(self) -> 'Layer':
        return self._placed(self.host_strategy, False)

    def setup_for_gpu_prediction(self) -> 'Layer':
        return self._placed(self.gpu_strategy, True)

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        return {'name': self.name}

    def to_config(self) -> Dict[str, Any]:
        return {'class': self.__class__.__name__, 'config': self.get_config()}

    @classmethod
    def from_config(cls, config: Dict[str, Any]):
        return cls(**config)

    def __repr__(self):
        return f"{self.__class__.__name__}(name={self.name!r})"


class WeightedLayer(Layer):
    """Layer owning a weights parameter (index 0) and a bias parameter (index 1)."""
    WEIGHTS_INDEX = 0
    BIAS_INDEX = 1

    def __init__(self, name: str = '', weight_learn_rate_factor: float = 1.0, bias_learn_rate_factor: float = 1.0,
                 weight_l2_factor: float = 1.0, bias_l2_factor: float = 1.0,
                 rng: Optional[np.random.Generator] = None):
        super().__init__(name)
        self.rng = rng
        self.learnable_parameters = [
            PredictionLearnableParameter(None, weight_learn_rate_factor, weight_l2_factor),
            PredictionLearnableParameter(None, bias_learn_rate_factor, bias_l2_factor),
        ]

    def weights_size(self) -> tuple:
        raise NotImplementedError

    def bias_size(self) -> tuple:
        raise NotImplementedError

    @property
    def weights(self):
        return self.learnable_parameters[self.WEIGHTS_INDEX].value

    @weights.setter
    def weights(self, value):
        if value is not None:
            value = self._coerce_weights(cuda.get_array_module(value).asarray(value))
        self._assign(self.WEIGHTS_INDEX, value, self._expected_weights_size())

    @property
    def bias(self):
        return self.learnable_parameters[self.BIAS_INDEX].value

    @bias.setter
    def bias(self, value):
        if value is not None:
            value = self._coerce_bias(cuda.get_array_module(value).asarray(value))
        self._assign(self.BIAS_INDEX, value, self.bias_size())

    def _coerce_weights(self, value):
        return value

    def _coerce_bias(self, value):
        return value

    def _expected_weights_size(self):
        return self.weights_size() if self.has_size_determined else None

    def _assign(self, index, value, expected):
        if value is not None:
            if expected is not None and tuple(value.shape) != tuple(expected):
                raise ShapeMismatchError(
                    f"{self.__class__.__name__} '{self.name}': expected an array of size {tuple(expected)}, "
                    f"got {tuple(value.shape)}")
        # copies of this layer may share the parameter object
        parameter = copy.copy(self.learnable_parameters[index])
        parameter.value = value
        self.learnable_parameters[index] = parameter

    def initialize_learnable_parameters(self, precision) -> 'Layer':
        layer = self._copy()
        params = [copy.copy(p) for p in layer.learnable_parameters]
        weights, bias = params[self.WEIGHTS_INDEX], params[self.BIAS_INDEX]
        if weights.value is None:
            weights.value = gaussian(self.weights_size(), precision, self.rng)
        else:
            weights.value = precision.cast(weights.value)
        if bias.value is None:
            bias.value = zeros(self.bias_size(), precision)
        else:
            bias.value = precision.cast(bias.value)
        layer.learnable_parameters = params
        return layer

    def get_config(self):
        weights, bias = self.learnable_parameters
        return {
            'name': self.name,
            'weight_learn_rate_factor': weights.learn_rate_factor,
            'bias_learn_rate_factor': bias.learn_rate_factor,
            'weight_l2_factor': weights.l2_factor,
            'bias_l2_factor': bias.l2_factor,
        }
