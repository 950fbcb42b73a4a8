import numpy as np
import pytest

from seriesnet.kernels import host, device


CONV_CASES = [
    # (input shape, filter shape, vpad, hpad, vstride, hstride)
    ((5, 5, 2, 3), (3, 3, 2, 4), 0, 0, 1, 1),
    ((6, 7, 3, 2), (3, 2, 3, 5), 1, 2, 2, 1),
    ((4, 4, 1, 2), (4, 4, 1, 3), 0, 0, 1, 1),
]


@pytest.mark.parametrize('x_shape, w_shape, vp, hp, vs, hs', CONV_CASES)
def test_convolution_host_matches_device(rng, x_shape, w_shape, vp, hp, vs, hs):
    X = rng.standard_normal(x_shape)
    W = rng.standard_normal(w_shape)
    Z_host = host.convolve_forward_2d(X, W, vp, hp, vs, hs)
    Z_device = device.convolve_forward_2d(X, W, vp, hp, vs, hs)
    np.testing.assert_allclose(Z_host, Z_device, rtol=1e-10, atol=1e-12)

    dZ = rng.standard_normal(Z_host.shape)
    np.testing.assert_allclose(host.convolve_backward_data_2d(X, W, dZ, vp, hp, vs, hs),
                               device.convolve_backward_data_2d(X, W, dZ, vp, hp, vs, hs),
                               rtol=1e-10, atol=1e-12)
    np.testing.assert_allclose(host.convolve_backward_filter_2d(X, W, dZ, vp, hp, vs, hs),
                               device.convolve_backward_filter_2d(X, W, dZ, vp, hp, vs, hs),
                               rtol=1e-10, atol=1e-12)


def test_convolution_is_cross_correlation():
    X = np.arange(9, dtype=np.float64).reshape(3, 3, 1, 1)
    W = np.zeros((2, 2, 1, 1))
    W[0, 0, 0, 0] = 1.0
    Z = host.convolve_forward_2d(X, W, 0, 0, 1, 1)
    np.testing.assert_array_equal(Z[:, :, 0, 0], X[:2, :2, 0, 0])


def test_bias_gradient_sums_over_space_and_observations(rng):
    dZ = rng.standard_normal((3, 4, 5, 2))
    db = device.convolve_backward_bias_2d(dZ)
    assert db.shape == (1, 1, 5)
    np.testing.assert_allclose(db[0, 0], dZ.sum(axis=(0, 1, 3)))


@pytest.mark.parametrize('pad, stride', [(0, 1), (1, 2), (1, 1)])
def test_max_pooling_backward_host_matches_device(rng, pad, stride):
    X = rng.standard_normal((6, 6, 2, 3))
    Z = host.pooling_max_forward_2d(X, 3, 3, pad, pad, stride, stride)
    dZ = rng.standard_normal(Z.shape)
    np.testing.assert_allclose(host.pooling_max_backward_2d(Z, dZ, X, 3, 3, pad, pad, stride, stride),
                               device.pooling_max_backward_2d(Z, dZ, X, 3, 3, pad, pad, stride, stride))


def test_max_pooling_ties_go_to_first_element_in_both_kernels():
    X = np.ones((4, 4, 1, 1))
    Z = device.pooling_max_forward_2d(X, 2, 2, 0, 0, 2, 2)
    dZ = np.ones(Z.shape)
    expected = np.zeros((4, 4))
    expected[::2, ::2] = 1
    for kernels in (host, device):
        dX = kernels.pooling_max_backward_2d(Z, dZ, X, 2, 2, 0, 0, 2, 2)
        np.testing.assert_array_equal(dX[:, :, 0, 0], expected)


def test_max_pooling_never_selects_padding():
    # strictly increasing, all negative: zero padding would win every border window
    X = (np.arange(16, dtype=np.float64) - 100).reshape(4, 4, 1, 1)
    Z = host.pooling_max_forward_2d(X, 2, 2, 1, 1, 1, 1)
    assert Z.shape == (5, 5, 1, 1)
    assert np.all(Z < 0)
    # the window at the top left corner only covers X[0, 0]
    assert Z[0, 0, 0, 0] == X[0, 0, 0, 0]
    # a window fully inside the data picks its bottom right (largest) element
    assert Z[2, 2, 0, 0] == X[2, 2, 0, 0]

    dX = host.pooling_max_backward_2d(Z, np.ones(Z.shape), X, 2, 2, 1, 1, 1, 1)
    assert dX.shape == X.shape
    assert dX.sum() == Z.size


def test_average_pooling_of_constant_is_constant():
    X = np.full((6, 6, 3, 2), 2.5)
    Z = device.pooling_average_forward_2d(X, 3, 2, 0, 0, 1, 2)
    np.testing.assert_allclose(Z, 2.5)


def test_average_pooling_counts_padding_as_zero():
    X = np.ones((2, 2, 1, 1))
    Z = device.pooling_average_forward_2d(X, 2, 2, 1, 1, 1, 1)
    assert Z[0, 0, 0, 0] == pytest.approx(0.25)
    assert Z[1, 1, 0, 0] == pytest.approx(1.0)


def test_softmax_sums_to_one_over_channels(rng):
    X = rng.standard_normal((1, 1, 5, 4)) * 50
    Z = device.softmax_forward_2d(X)
    np.testing.assert_allclose(Z.sum(axis=2), 1.0)
    assert np.all(np.isfinite(Z))


def test_local_map_norm_with_window_of_one():
    X = np.full((1, 1, 3, 1), 2.0)
    Z = device.local_map_norm_forward_2d(X, 1, 1.0, 1.0, 1.0)
    # each channel only sees itself: 2 / (1 + 1 * 4)
    np.testing.assert_allclose(Z, 0.4)


def test_relu():
    X = np.array([-1.0, 0.0, 2.0]).reshape(1, 1, 3, 1)
    Z = device.relu_forward(X)
    np.testing.assert_array_equal(Z.ravel(), [0.0, 0.0, 2.0])
    dX = device.relu_backward(Z, np.ones_like(Z), X)
    np.testing.assert_array_equal(dX.ravel(), [0.0, 0.0, 1.0])
