"""Numeric kernels, one implementation per placement.

``host`` runs on NumPy arrays (with numba-compiled loops), ``device`` is
array-module generic and is what runs on CuPy arrays.
"""
from . import host, device  # noqa: F401

__all__ = ['host', 'device']
