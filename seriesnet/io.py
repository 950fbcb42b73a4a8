"""Saving and loading networks as HDF5 files.

The file holds the layer architecture as a JSON attribute, one dataset per
learnable parameter under ``parameters/`` and, when the input layer zero
centers its data, the average image.
"""
from __future__ import annotations
import json
from typing import Dict

import h5py
import numpy as np

from . import cuda
from .layers import ImageInput, WeightedLayer, layer_from_config
from .network import SeriesNetwork

FORMAT_VERSION = 1


def _parameter_key(layer_index: int, parameter_index: int) -> str:
    return f"{layer_index}_{parameter_index}"


def save_weights_hdf5(path: str, weights: Dict[str, np.ndarray], attrs: Dict = None):
    with h5py.File(path, 'w') as f:
        group = f.create_group('parameters')
        for k, v in weights.items():
            group.create_dataset(k, data=v)
        for k, v in (attrs or {}).items():
            f.attrs[k] = v


def load_weights_hdf5(path: str):
    with h5py.File(path, 'r') as f:
        weights = {k: f['parameters'][k][()] for k in f['parameters'].keys()}
        attrs = dict(f.attrs)
    return weights, attrs


def save_network(path: str, network: SeriesNetwork):
    weights = {}
    for layer_index, layer in enumerate(network.layers):
        for parameter_index, parameter in enumerate(layer.learnable_parameters):
            if parameter.value is not None:
                weights[_parameter_key(layer_index, parameter_index)] = np.asarray(cuda.to_cpu(parameter.value))
    input_layer = network.layers[0]
    if isinstance(input_layer, ImageInput) and input_layer.average_image is not None:
        weights['average_image'] = np.asarray(input_layer.average_image)
    attrs = {
        'format_version': FORMAT_VERSION,
        'architecture': json.dumps(network.to_config()),
    }
    save_weights_hdf5(path, weights, attrs)


def load_network(path: str) -> SeriesNetwork:
    """Rebuild a saved network in its host prediction representation."""
    weights, attrs = load_weights_hdf5(path)
    architecture = attrs['architecture']
    if isinstance(architecture, bytes):
        architecture = architecture.decode()
    layers = []
    for layer_index, config in enumerate(json.loads(architecture)):
        layer = layer_from_config(config)
        if isinstance(layer, WeightedLayer):
            weights_key = _parameter_key(layer_index, WeightedLayer.WEIGHTS_INDEX)
            bias_key = _parameter_key(layer_index, WeightedLayer.BIAS_INDEX)
            if weights_key in weights:
                layer.weights = weights[weights_key]
            if bias_key in weights:
                layer.bias = weights[bias_key]
        layers.append(layer)
    if 'average_image' in weights and isinstance(layers[0], ImageInput):
        layers[0].average_image = weights['average_image']
    return SeriesNetwork(layers).prepare_network_for_prediction()
