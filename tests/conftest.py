"""Shared fixtures and helpers for the seriesnet test suite."""
import os

# leave the BLAS thread settings of the test runner alone
os.environ.setdefault('SERIESNET_DISABLE_AUTO_THREADS', '1')

import numpy as np
import pytest

from seriesnet import cuda
from seriesnet.precision import Precision


def numerical_gradient(f, A, eps=1e-6):
    """Central differences of the scalar ``f()`` w.r.t. every element of ``A``.

    ``A`` is perturbed in place and restored afterwards.
    """
    grad = np.zeros_like(A)
    it = np.nditer(A, flags=['multi_index'])
    while not it.finished:
        index = it.multi_index
        original = A[index]
        A[index] = original + eps
        plus = f()
        A[index] = original - eps
        minus = f()
        A[index] = original
        grad[index] = (plus - minus) / (2 * eps)
        it.iternext()
    return grad


def check_input_gradient(layer, X, rng, rtol=1e-5, atol=1e-8):
    Z, memory = layer.forward(X)
    R = rng.standard_normal(Z.shape)
    dX = layer.backward(X, Z, R, memory)
    expected = numerical_gradient(lambda: np.sum(layer.forward(X)[0] * R), X)
    np.testing.assert_allclose(dX, expected, rtol=rtol, atol=atol)


def check_parameter_gradients(layer, X, rng, rtol=1e-5, atol=1e-8):
    Z, _ = layer.forward(X)
    R = rng.standard_normal(Z.shape)
    gradients = layer.gradients(X, R)
    assert len(gradients) == len(layer.learnable_parameters)
    for parameter, gradient in zip(layer.learnable_parameters, gradients):
        assert gradient.shape == parameter.value.shape
        expected = numerical_gradient(lambda: np.sum(layer.forward(X)[0] * R), parameter.value)
        np.testing.assert_allclose(gradient, expected, rtol=rtol, atol=atol)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def double():
    return Precision('double')


@pytest.fixture
def single():
    return Precision('single')


@pytest.fixture(scope='session')
def capability():
    return cuda.probe()


requires_gpu = pytest.mark.skipif(
    cuda.cp is None or not cuda.probe().available, reason='needs a usable CUDA device')
