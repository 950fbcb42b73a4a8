"""Floating point precision policy."""
from __future__ import annotations
import numpy as np
from . import cuda

NAME2DTYPE = {'single': np.float32, 'double': np.float64}


class Precision:
    """Casts arrays and scalars to the configured floating point width."""
    def __init__(self, type: str = 'single'):
        if type not in NAME2DTYPE:
            raise ValueError(f"Unknown precision {type!r}, expected one of {sorted(NAME2DTYPE)}")
        self.type = type
        self.dtype = NAME2DTYPE[type]

    def cast(self, data):
        if np.isscalar(data):
            return self.dtype(data)
        xp = cuda.get_array_module(data)
        return xp.asarray(data).astype(self.dtype, copy=False)

    def __repr__(self):
        return f"Precision({self.type!r})"
