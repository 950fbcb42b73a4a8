"""Layers of a series network.

The first layer of a network is an ``ImageInput`` and the last one a
``CrossEntropy`` output layer; everything in between transforms a
(H, W, C, N) tensor into another one.
"""
from .base import Layer, WeightedLayer, pair
from .input import ImageInput
from .convolution import Convolution2D, FullyConnected
from .pooling import MaxPooling2D, AveragePooling2D
from .normalization import CrossChannelNormalization
from .activations import ReLU, Softmax
from .core import Dropout, NullLayer
from .output import CrossEntropy

NAME2LAYER = {cls.__name__: cls for cls in [
    ImageInput, Convolution2D, FullyConnected, MaxPooling2D, AveragePooling2D,
    CrossChannelNormalization, ReLU, Softmax, Dropout, NullLayer, CrossEntropy,
]}


def layer_from_config(config):
    """Rebuild a layer from the output of ``Layer.to_config``."""
    cls = NAME2LAYER[config['class']]
    return cls.from_config(config['config'])


__all__ = [
    'Layer', 'WeightedLayer', 'pair',
    'ImageInput', 'Convolution2D', 'FullyConnected', 'MaxPooling2D', 'AveragePooling2D',
    'CrossChannelNormalization', 'ReLU', 'Softmax', 'Dropout', 'NullLayer', 'CrossEntropy',
    'NAME2LAYER', 'layer_from_config',
]
