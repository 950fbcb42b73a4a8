"""Series network: a linear chain of layers from an input layer to an output layer."""
from __future__ import annotations
import logging
import numpy as np
from collections import Counter
from typing import List, Sequence, Tuple

from . import cuda
from .errors import InvalidOperationError, ShapeMismatchError
from .layers import Layer, ImageInput
from .learnable import TrainingLearnableParameter

logger = logging.getLogger(__name__)


def compute_accuracy(Y, T) -> float:
    """Percentage of observations whose arg-max over channels matches the target's."""
    xp = cuda.get_array_module(Y)
    predicted = xp.argmax(Y, axis=2)
    expected = xp.argmax(xp.asarray(T), axis=2)
    num_observations = predicted.size
    return float(cuda.to_cpu(100 * (predicted == expected).sum() / num_observations))


class SeriesNetwork:
    """Ordered layers; index 0 is the input layer and index -1 the output layer.

    Methods that change the representation or placement of the layers return
    a new network. ``update_learnable_parameters`` is the only in-place
    mutation and is used by the trainer.
    """
    def __init__(self, layers: Sequence[Layer]):
        self.layers: List[Layer] = list(layers)

    @property
    def output_layer_index(self) -> int:
        return len(self.layers) - 1

    @property
    def input_layer(self) -> Layer:
        return self.layers[0]

    @property
    def output_layer(self) -> Layer:
        return self.layers[-1]

    @property
    def learnable_parameters(self) -> tuple:
        return tuple(p for layer in self.layers for p in layer.learnable_parameters)

    # ------------------------------------------------------------------
    # inference
    # ------------------------------------------------------------------
    def predict(self, data):
        return self.activations(data, self.output_layer_index)

    def activations(self, data, output_layer: int):
        """Output of layer ``output_layer`` (0-based) on inference data."""
        if isinstance(self.layers[0], ImageInput):
            data = self.layers[0].apply_transforms(data)
        output = data
        for layer in self.layers[:output_layer + 1]:
            output = layer.predict(output)
        return output

    def classify(self, data):
        """Class label of every observation, taken from the output layer's class names."""
        scores = cuda.to_cpu(self.predict(data))
        indices = np.argmax(scores, axis=2).reshape(-1)
        class_names = getattr(self.output_layer, 'class_names', None)
        if not class_names:
            return indices
        return np.asarray(class_names, dtype=object)[indices]

    # ------------------------------------------------------------------
    # training
    # ------------------------------------------------------------------
    def gradients(self, data, response):
        """Return ``(gradients, loss, accuracy)`` for one mini-batch.

        ``data`` must already be transformed by the input layer.
        """
        outputs, memory = self._forward_propagation(data)
        Y = outputs[-1]
        xp = cuda.get_array_module(Y)
        response = xp.asarray(response)

        loss = self.output_layer.forward_loss(Y, response)
        accuracy = compute_accuracy(Y, response)

        dX = self._backward_propagation(outputs, response, memory)

        gradients = []
        for index in range(1, self.output_layer_index):
            gradients.extend(self.layers[index].gradients(outputs[index - 1], dX[index + 1]))
        logger.debug("gradients: loss=%.6f accuracy=%.2f", float(cuda.to_cpu(loss)), accuracy)
        return gradients, loss, accuracy

    def _forward_propagation(self, data):
        outputs, memory = [], []
        X = data
        for layer in self.layers:
            Z, mem = layer.forward(X)
            outputs.append(Z)
            memory.append(mem)
            X = Z
        return outputs, memory

    def _backward_propagation(self, outputs, response, memory):
        last = self.output_layer_index
        dX = [None] * (last + 1)
        dX[last] = self.output_layer.backward_loss(outputs[last], response)
        # the input layer never receives backward
        for index in range(last - 1, 0, -1):
            dX[index] = self.layers[index].backward(outputs[index - 1], outputs[index], dX[index + 1], memory[index])
        return dX

    def update_learnable_parameters(self, deltas) -> 'SeriesNetwork':
        """Add ``deltas[i]`` to the i-th learnable parameter, in place."""
        parameters = self.learnable_parameters
        if len(deltas) != len(parameters):
            raise InvalidOperationError(
                f"Expected {len(parameters)} parameter deltas, got {len(deltas)}")
        for parameter, delta in zip(parameters, deltas):
            if isinstance(parameter, TrainingLearnableParameter):
                parameter.value += delta
            else:
                # prediction values may be shared between network copies
                parameter.value = parameter.value + delta
        return self

    # ------------------------------------------------------------------
    # representation / placement
    # ------------------------------------------------------------------
    def prepare_network_for_training(self) -> 'SeriesNetwork':
        return SeriesNetwork([layer.prepare_for_training() for layer in self.layers])

    def prepare_network_for_prediction(self) -> 'SeriesNetwork':
        return SeriesNetwork([layer.prepare_for_prediction() for layer in self.layers])

    def setup_network_for_host_prediction(self) -> 'SeriesNetwork':
        return SeriesNetwork([layer.setup_for_host_prediction() for layer in self.layers])

    def setup_network_for_gpu_prediction(self, capability: cuda.DeviceCapability) -> 'SeriesNetwork':
        cuda.require(capability)
        return SeriesNetwork([layer.setup_for_gpu_prediction() for layer in self.layers])

    def to_config(self) -> list:
        return [layer.to_config() for layer in self.layers]

    def __len__(self):
        return len(self.layers)

    def __repr__(self):
        inner = ', '.join(repr(layer) for layer in self.layers)
        return f"SeriesNetwork([{inner}])"


def infer_parameters(layers: Sequence[Layer], input_size=None) -> List[Layer]:
    """Name unnamed layers and resolve every layer's size down the chain.

    Unnamed layers get ``<default_name>_<k>`` where ``k`` counts layers of
    that kind. Raises ``ShapeMismatchError`` when a layer cannot accept the
    output of its predecessor.
    """
    layers = _name_layers(layers)
    if input_size is None:
        input_size = layers[0].forward_propagate_size(None) if isinstance(layers[0], ImageInput) else None
    if input_size is None:
        raise ValueError("The first layer must be an ImageInput or an input size must be given")
    size = tuple(input_size)
    resolved = []
    for index, layer in enumerate(layers):
        layer = layer.infer_size(size)
        if not layer.is_valid_input_size(size):
            raise ShapeMismatchError(
                f"Layer {index} ('{layer.name}', {layer.__class__.__name__}) cannot accept an input of size {size}")
        size = tuple(layer.forward_propagate_size(size))
        logger.debug("layer %d %s -> %s", index, layer.name, size)
        resolved.append(layer)
    return resolved


def _name_layers(layers: Sequence[Layer]) -> List[Layer]:
    counts: Counter = Counter()
    named = []
    taken = {layer.name for layer in layers if layer.name}
    for layer in layers:
        if not layer.name:
            while True:
                counts[layer.default_name] += 1
                name = f"{layer.default_name}_{counts[layer.default_name]}"
                if name not in taken:
                    break
            layer = layer._copy()
            layer.name = name
            taken.add(name)
        named.append(layer)
    return named
