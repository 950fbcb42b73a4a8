"""Image input layer."""
from __future__ import annotations
import copy
from typing import Optional
import numpy as np

from ..errors import InvalidOperationError
from .. import transforms as T
from .base import Layer


class ImageInput(Layer):
    """First layer of every network.

    Passes the data through; the network applies ``transforms``
    (normalization) to every batch and the trainer applies
    ``train_transforms`` (augmentation) to training batches before that.

    ``normalization`` is ``'zerocenter'``, ``'none'`` or a list of transforms;
    ``data_augmentation`` is ``'none'``, ``'randcrop'``, ``'randfliplr'``, a
    list of those names or a list of transforms.
    """
    default_name = 'imageinput'

    def __init__(self, input_size, normalization='zerocenter', data_augmentation='none', name: str = '',
                 rng: Optional[np.random.Generator] = None):
        super().__init__(name)
        input_size = tuple(int(s) for s in input_size)
        self.input_size = input_size + (1,) if len(input_size) == 2 else input_size
        if isinstance(normalization, str):
            normalization = T.create_normalization(normalization, self.input_size)
        if isinstance(data_augmentation, str) or (
                data_augmentation and all(isinstance(d, str) for d in data_augmentation)):
            data_augmentation = T.create_augmentations(data_augmentation, self.input_size, rng)
        self.transforms = list(normalization)
        self.train_transforms = list(data_augmentation)

    def forward(self, X):
        return X, None

    def backward(self, X, Z, dZ, memory):
        raise InvalidOperationError("backward cannot be called on ImageInput layers")

    def gradients(self, X, dZ):
        raise InvalidOperationError("gradients cannot be called on ImageInput layers")

    def forward_propagate_size(self, input_size):
        return self.input_size

    def is_valid_input_size(self, input_size):
        return tuple(input_size) == self.input_size

    def is_valid_training_image_size(self, training_image_size) -> bool:
        size = tuple(int(s) for s in training_image_size)
        if len(size) == 2:
            size = size + (1,)
        for transform in self.train_transforms:
            size = transform.forward_propagate_size(size)
        return tuple(size) == self.input_size

    @property
    def average_image(self):
        for transform in self.transforms:
            if isinstance(transform, T.ZeroCenterImageTransform):
                return transform.average_image
        return None

    @average_image.setter
    def average_image(self, value):
        # copies of this layer may share the transform objects
        updated = []
        for transform in self.transforms:
            if isinstance(transform, T.ZeroCenterImageTransform):
                transform = copy.copy(transform)
                transform.average_image = value
            updated.append(transform)
        self.transforms = updated

    def apply_transforms(self, X):
        return T.apply_transforms(self.transforms, X)

    def apply_train_transforms(self, X):
        return T.apply_transforms(self.train_transforms, X)

    def get_config(self):
        return {
            'name': self.name,
            'input_size': list(self.input_size),
            'normalization': self.transforms[0].type if self.transforms else 'none',
            'data_augmentation': [t.type for t in self.train_transforms] or 'none',
        }
