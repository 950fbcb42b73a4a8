"""Mini-batch dispatch of in-memory image arrays."""
from __future__ import annotations
import numpy as np
from typing import Optional

from .precision import Precision

END_OF_EPOCH = ('truncateLast', 'discardLast')


def dummify(labels, class_names) -> np.ndarray:
    """One-hot encode ``labels`` into a ``(1, 1, num_classes, N)`` array."""
    labels = np.asarray(labels)
    lookup = {name: index for index, name in enumerate(class_names)}
    dummy = np.zeros((1, 1, len(class_names), labels.shape[0]))
    for n, label in enumerate(labels.tolist()):
        dummy[0, 0, lookup[label], n] = 1
    return dummy


def undummify(scores, class_names):
    """Inverse of ``dummify``: the class name of the largest score of every observation."""
    indices = np.argmax(np.asarray(scores), axis=2).reshape(-1)
    return np.asarray(class_names, dtype=object)[indices]


class ArrayDispatcher:
    """Serve (H, W, C, N) data and their labels in mini-batches.

    The mini-batch size is clipped to the number of observations. At the end
    of an epoch a final incomplete mini-batch is either returned
    (``'truncateLast'``) or dropped (``'discardLast'``). Labels are one-hot
    encoded against ``class_names``, the sorted unique labels.
    """
    def __init__(self, data, response=None, mini_batch_size: int = 128, end_of_epoch: str = 'truncateLast',
                 precision: Optional[Precision] = None, rng: Optional[np.random.Generator] = None):
        if end_of_epoch not in END_OF_EPOCH:
            raise ValueError(f"end_of_epoch must be one of {list(END_OF_EPOCH)}, got {end_of_epoch!r}")
        data = np.asarray(data)
        if data.ndim == 3:
            # a stack of grayscale images
            data = data[:, :, None, :]
        if data.ndim != 4:
            raise ValueError(f"data must be a 4-D (H, W, C, N) array, got {data.ndim} dimensions")
        self.data = data
        self.response = None if response is None else np.asarray(response).reshape(-1)
        if self.response is not None and self.response.shape[0] != data.shape[3]:
            raise ValueError(
                f"data and response have different numbers of observations: {data.shape[3]} and "
                f"{self.response.shape[0]}")
        self.class_names = [] if self.response is None else sorted(np.unique(self.response).tolist())
        self.image_size = (data.shape[0], data.shape[1], data.shape[2])
        self.num_observations = data.shape[3]
        self.mini_batch_size = mini_batch_size
        self.end_of_epoch = end_of_epoch
        self.precision = precision or Precision('single')
        self.rng = rng or np.random.default_rng()
        self.ordered_indices = np.arange(self.num_observations)
        self.is_done = False
        self._start = 0
        self._end = 0

    @property
    def mini_batch_size(self) -> int:
        return self._mini_batch_size

    @mini_batch_size.setter
    def mini_batch_size(self, value):
        self._mini_batch_size = min(int(value), self.num_observations)

    @property
    def num_iterations_per_epoch(self) -> int:
        full, rest = divmod(self.num_observations, self.mini_batch_size)
        return full + (1 if rest and self.end_of_epoch == 'truncateLast' else 0)

    def start(self):
        self.is_done = self.num_observations == 0
        self._start = 0
        self._end = self.mini_batch_size

    def shuffle(self):
        self.ordered_indices = self.rng.permutation(self.num_observations)

    def next(self):
        indices = self.ordered_indices[self._start:self._end]
        X = self.precision.cast(self.data[:, :, :, indices])
        if self.response is None:
            Y = None
        else:
            Y = self.precision.cast(dummify(self.response[indices], self.class_names))
        self._advance()
        return X, Y

    def _advance(self):
        if self._end == self.num_observations:
            self.is_done = True
        elif self._end + self.mini_batch_size > self.num_observations:
            if self.end_of_epoch == 'truncateLast':
                self._start += self.mini_batch_size
                self._end = self.num_observations
            else:
                self.is_done = True
        else:
            self._start += self.mini_batch_size
            self._end += self.mini_batch_size

    def __iter__(self):
        self.start()
        while not self.is_done:
            yield self.next()
