"""
Array-module generic kernels, used for device (CuPy) execution.

Every function works on whatever array module its inputs come from, so the
same code runs on ``cupy.ndarray`` on the GPU and on ``numpy.ndarray``.
Tensors are laid out height x width x channel x observation.
"""
from __future__ import annotations
from typing import Any

from .. import cuda

ArrayLike = Any


def output_size(size: int, pad: int, window: int, stride: int) -> int:
    return (size + 2 * pad - window) // stride + 1


def pad_spatial(X, vertical_pad, horizontal_pad, value=0):
    if vertical_pad == 0 and horizontal_pad == 0:
        return X
    xp = cuda.get_array_module(X)
    return xp.pad(X, ((vertical_pad, vertical_pad), (horizontal_pad, horizontal_pad), (0, 0), (0, 0)),
                  mode='constant', constant_values=value)


def crop_spatial(X_padded, vertical_pad, horizontal_pad, height, width):
    return X_padded[vertical_pad:vertical_pad + height, horizontal_pad:horizontal_pad + width]


def _window(X_padded, i, j, out_h, out_w, vertical_stride, horizontal_stride):
    # all elements at offset (i, j) of every pooling / filter window
    return X_padded[i:i + vertical_stride * (out_h - 1) + 1:vertical_stride,
                    j:j + horizontal_stride * (out_w - 1) + 1:horizontal_stride]


def _window_slice(i, j, out_h, out_w, vertical_stride, horizontal_stride):
    return (slice(i, i + vertical_stride * (out_h - 1) + 1, vertical_stride),
            slice(j, j + horizontal_stride * (out_w - 1) + 1, horizontal_stride))


# ============================================================================
# Convolution
# ============================================================================

def convolve_forward_2d(X, weights, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    """Cross-correlate ``X`` (H, W, C, N) with ``weights`` (fh, fw, C, F)."""
    xp = cuda.get_array_module(X)
    fh, fw, _, num_filters = weights.shape
    out_h = output_size(X.shape[0], vertical_pad, fh, vertical_stride)
    out_w = output_size(X.shape[1], horizontal_pad, fw, horizontal_stride)
    X_padded = pad_spatial(X, vertical_pad, horizontal_pad)
    Z = xp.zeros((out_h, out_w, num_filters, X.shape[3]), dtype=xp.result_type(X.dtype, weights.dtype))
    for i in range(fh):
        for j in range(fw):
            patch = _window(X_padded, i, j, out_h, out_w, vertical_stride, horizontal_stride)
            Z += xp.einsum('hwcn,cf->hwfn', patch, weights[i, j])
    return Z


def convolve_backward_data_2d(X, weights, dZ, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    xp = cuda.get_array_module(dZ)
    height, width, channels, n = X.shape
    fh, fw = weights.shape[:2]
    out_h, out_w = dZ.shape[:2]
    dX_padded = xp.zeros((height + 2 * vertical_pad, width + 2 * horizontal_pad, channels, n),
                         dtype=xp.result_type(dZ.dtype, weights.dtype))
    for i in range(fh):
        for j in range(fw):
            rows, cols = _window_slice(i, j, out_h, out_w, vertical_stride, horizontal_stride)
            dX_padded[rows, cols] += xp.einsum('hwfn,cf->hwcn', dZ, weights[i, j])
    return crop_spatial(dX_padded, vertical_pad, horizontal_pad, height, width)


def convolve_backward_filter_2d(X, weights, dZ, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    xp = cuda.get_array_module(dZ)
    fh, fw = weights.shape[:2]
    out_h, out_w = dZ.shape[:2]
    X_padded = pad_spatial(X, vertical_pad, horizontal_pad)
    dW = xp.zeros(weights.shape, dtype=xp.result_type(X.dtype, dZ.dtype))
    for i in range(fh):
        for j in range(fw):
            patch = _window(X_padded, i, j, out_h, out_w, vertical_stride, horizontal_stride)
            dW[i, j] = xp.einsum('hwcn,hwfn->cf', patch, dZ)
    return dW


def convolve_backward_bias_2d(dZ):
    return dZ.sum(axis=(0, 1, 3)).reshape(1, 1, -1)


# ============================================================================
# Pooling
# ============================================================================

def _most_negative(X):
    xp = cuda.get_array_module(X)
    return -xp.finfo(X.dtype).max


def pooling_max_forward_2d(X, pool_h, pool_w, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    xp = cuda.get_array_module(X)
    out_h = output_size(X.shape[0], vertical_pad, pool_h, vertical_stride)
    out_w = output_size(X.shape[1], horizontal_pad, pool_w, horizontal_stride)
    # padding must never win the max
    X_padded = pad_spatial(X, vertical_pad, horizontal_pad, value=_most_negative(X))
    Z = None
    for i in range(pool_h):
        for j in range(pool_w):
            patch = _window(X_padded, i, j, out_h, out_w, vertical_stride, horizontal_stride)
            Z = patch.copy() if Z is None else xp.maximum(Z, patch)
    return Z


def pooling_max_backward_2d(Z, dZ, X, pool_h, pool_w, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    """Route each output gradient to the first maximal element of its window."""
    xp = cuda.get_array_module(dZ)
    height, width = X.shape[:2]
    out_h, out_w = Z.shape[:2]
    X_padded = pad_spatial(X, vertical_pad, horizontal_pad, value=_most_negative(X))
    dX_padded = xp.zeros(X_padded.shape, dtype=dZ.dtype)
    assigned = xp.zeros(Z.shape, dtype=bool)
    for i in range(pool_h):
        for j in range(pool_w):
            rows, cols = _window_slice(i, j, out_h, out_w, vertical_stride, horizontal_stride)
            mask = (X_padded[rows, cols] == Z) & ~assigned
            assigned |= mask
            dX_padded[rows, cols] += xp.where(mask, dZ, 0)
    return crop_spatial(dX_padded, vertical_pad, horizontal_pad, height, width)


def pooling_average_forward_2d(X, pool_h, pool_w, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    xp = cuda.get_array_module(X)
    out_h = output_size(X.shape[0], vertical_pad, pool_h, vertical_stride)
    out_w = output_size(X.shape[1], horizontal_pad, pool_w, horizontal_stride)
    X_padded = pad_spatial(X, vertical_pad, horizontal_pad)
    Z = xp.zeros((out_h, out_w) + X.shape[2:], dtype=X.dtype)
    for i in range(pool_h):
        for j in range(pool_w):
            Z += _window(X_padded, i, j, out_h, out_w, vertical_stride, horizontal_stride)
    return Z / (pool_h * pool_w)


def pooling_average_backward_2d(Z, dZ, X, pool_h, pool_w, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    xp = cuda.get_array_module(dZ)
    height, width, channels, n = X.shape
    out_h, out_w = dZ.shape[:2]
    dX_padded = xp.zeros((height + 2 * vertical_pad, width + 2 * horizontal_pad, channels, n), dtype=dZ.dtype)
    share = dZ / (pool_h * pool_w)
    for i in range(pool_h):
        for j in range(pool_w):
            rows, cols = _window_slice(i, j, out_h, out_w, vertical_stride, horizontal_stride)
            dX_padded[rows, cols] += share
    return crop_spatial(dX_padded, vertical_pad, horizontal_pad, height, width)


# ============================================================================
# Cross channel (local response) normalization
# ============================================================================

def _look_behind_and_ahead(window_size):
    look_behind = (window_size - 1) // 2
    return look_behind, window_size - look_behind - 1


def _channel_window_sum(A, before, after):
    """S[c] = sum of A over channels c - before .. c + after, clipped at the edges."""
    xp = cuda.get_array_module(A)
    channels = A.shape[2]
    A_padded = xp.pad(A, ((0, 0), (0, 0), (before, after), (0, 0)), mode='constant')
    S = xp.zeros_like(A)
    for t in range(before + after + 1):
        S += A_padded[:, :, t:t + channels]
    return S


def _normalizers(X, window_size, alpha, k):
    look_behind, look_ahead = _look_behind_and_ahead(window_size)
    return k + (alpha / window_size) * _channel_window_sum(X * X, look_behind, look_ahead)


def local_map_norm_forward_2d(X, window_size, alpha, beta, k):
    return X / _normalizers(X, window_size, alpha, k) ** beta


def local_map_norm_backward_2d(Z, dZ, X, window_size, alpha, beta, k):
    look_behind, look_ahead = _look_behind_and_ahead(window_size)
    D = _normalizers(X, window_size, alpha, k)
    T = dZ * X * D ** (-beta - 1)
    # channel m feeds every normalizer whose window contains it
    spread = _channel_window_sum(T, look_ahead, look_behind)
    return dZ * D ** (-beta) - 2 * (alpha / window_size) * beta * X * spread


# ============================================================================
# Element-wise operations
# ============================================================================

def softmax_forward_2d(X):
    xp = cuda.get_array_module(X)
    e = xp.exp(X - X.max(axis=2, keepdims=True))
    return e / e.sum(axis=2, keepdims=True)


def softmax_backward_2d(Z, dZ):
    return Z * (dZ - (dZ * Z).sum(axis=2, keepdims=True))


def relu_forward(X):
    xp = cuda.get_array_module(X)
    return xp.maximum(X, 0)


def relu_backward(Z, dZ, X):
    return dZ * (Z > 0)
