"""
Image transforms applied by the input layer.

Normalization transforms run on every batch (training and prediction);
augmentation transforms run only on training batches, before normalization.
All transforms work on (H, W, C, N) batches.
"""
from __future__ import annotations
import numpy as np
from typing import Optional, Sequence, List

from . import cuda
from .errors import ShapeMismatchError


class ImageTransform:
    """Abstract image transform."""
    type = 'none'

    def apply(self, X):
        raise NotImplementedError

    def forward_propagate_size(self, input_size):
        return tuple(input_size)

    def get_config(self):
        return {}

    def to_config(self):
        return {'type': self.type, 'config': self.get_config()}

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class ZeroCenterImageTransform(ImageTransform):
    """Subtract the average training image from every observation."""
    type = 'zerocenter'

    def __init__(self, image_size, average_image=None):
        self.image_size = tuple(int(s) for s in image_size)
        self._average_image = None
        if average_image is not None:
            self.average_image = average_image

    @property
    def average_image(self):
        return self._average_image

    @average_image.setter
    def average_image(self, value):
        value = np.asarray(cuda.to_cpu(value))
        if value.ndim == 2:
            value = value[:, :, None]
        if tuple(value.shape) != self.image_size:
            raise ShapeMismatchError(
                f"Average image should be the same size as the input image {self.image_size}, "
                f"got {tuple(value.shape)}")
        self._average_image = value

    def apply(self, X):
        if self._average_image is None:
            return X
        xp = cuda.get_array_module(X)
        average = xp.asarray(self._average_image).astype(X.dtype, copy=False)
        return X - average[..., None]

    def get_config(self):
        return {'image_size': list(self.image_size)}


class RandomCropImageTransform(ImageTransform):
    """Crop every observation to ``output_size`` at a random offset."""
    type = 'randcrop'

    def __init__(self, output_size, rng: Optional[np.random.Generator] = None):
        self.output_size = tuple(int(s) for s in output_size[:2])
        self.rng = rng or np.random.default_rng()

    def apply(self, X):
        xp = cuda.get_array_module(X)
        height, width = X.shape[:2]
        out_h, out_w = self.output_size
        if (height, width) == (out_h, out_w):
            return X
        crops = []
        for n in range(X.shape[3]):
            top = self.rng.integers(0, height - out_h + 1)
            left = self.rng.integers(0, width - out_w + 1)
            crops.append(X[top:top + out_h, left:left + out_w, :, n])
        return xp.stack(crops, axis=3)

    def forward_propagate_size(self, input_size):
        return self.output_size + tuple(input_size[2:])

    def get_config(self):
        return {'output_size': list(self.output_size)}


class RandomReflectionImageTransform(ImageTransform):
    """Mirror each observation left-right with probability 0.5."""
    type = 'randfliplr'

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng or np.random.default_rng()

    def apply(self, X):
        xp = cuda.get_array_module(X)
        flip = self.rng.random(X.shape[3]) > 0.5
        if not flip.any():
            return X
        flip = xp.asarray(flip)
        return xp.where(flip[None, None, None, :], X[:, ::-1], X)


NORMALIZATIONS = ('zerocenter', 'none')
AUGMENTATIONS = ('randcrop', 'randfliplr', 'none')


def create_normalization(name: str, image_size) -> List[ImageTransform]:
    if name not in NORMALIZATIONS:
        raise ValueError(f"Unknown normalization '{name}'. Available: {list(NORMALIZATIONS)}")
    if name == 'zerocenter':
        return [ZeroCenterImageTransform(image_size)]
    return []


def create_augmentations(names, image_size, rng: Optional[np.random.Generator] = None) -> List[ImageTransform]:
    if isinstance(names, str):
        names = [names]
    transforms = []
    for name in names:
        if name not in AUGMENTATIONS:
            raise ValueError(f"Unknown data augmentation '{name}'. Available: {list(AUGMENTATIONS)}")
        if name == 'randcrop':
            transforms.append(RandomCropImageTransform(image_size, rng))
        elif name == 'randfliplr':
            transforms.append(RandomReflectionImageTransform(rng))
    return transforms


def apply_transforms(transforms: Sequence[ImageTransform], X):
    for transform in transforms:
        X = transform.apply(X)
    return X
