"""
Host kernels: NumPy im2col + GEMM for convolution and numba-compiled loops
for the scatter-heavy backward passes.

Results match ``kernels.device`` to floating point tolerance; the remaining
operations are shared with it.
"""
from __future__ import annotations
import numpy as np
from numba import njit

from .device import (  # noqa: F401
    output_size, pad_spatial, crop_spatial,
    convolve_backward_bias_2d,
    pooling_max_forward_2d,
    pooling_average_forward_2d, pooling_average_backward_2d,
    local_map_norm_forward_2d, local_map_norm_backward_2d,
    softmax_forward_2d, softmax_backward_2d,
    relu_forward, relu_backward,
)


# ============================================================================
# numba loops
# ============================================================================

@njit
def _col2im(dcols, dx_padded, vertical_stride, horizontal_stride):
    batch, out_h, out_w, kh, kw, c = dcols.shape
    for n in range(batch):
        for i in range(out_h):
            i_pos = i * vertical_stride
            for j in range(out_w):
                j_pos = j * horizontal_stride
                for p in range(kh):
                    for q in range(kw):
                        for ch in range(c):
                            dx_padded[n, i_pos + p, j_pos + q, ch] += dcols[n, i, j, p, q, ch]


@njit
def _max_pool_scatter(x_padded, dz, dx_padded, pool_h, pool_w, vertical_stride, horizontal_stride):
    out_h, out_w, c, batch = dz.shape
    for n in range(batch):
        for ch in range(c):
            for i in range(out_h):
                r0 = i * vertical_stride
                for j in range(out_w):
                    c0 = j * horizontal_stride
                    best_r = r0
                    best_c = c0
                    best = x_padded[r0, c0, ch, n]
                    for p in range(pool_h):
                        for q in range(pool_w):
                            v = x_padded[r0 + p, c0 + q, ch, n]
                            if v > best:
                                best = v
                                best_r = r0 + p
                                best_c = c0 + q
                    dx_padded[best_r, best_c, ch, n] += dz[i, j, ch, n]


# ============================================================================
# Convolution (im2col / col2im)
# ============================================================================

def _im2col(X, kh, kw, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    x = np.ascontiguousarray(X.transpose(3, 0, 1, 2))  # (N, H, W, C)
    x_p = np.pad(x, ((0, 0), (vertical_pad, vertical_pad), (horizontal_pad, horizontal_pad), (0, 0)), mode='constant')
    batch, h_p, w_p, c = x_p.shape
    out_h = (h_p - kh) // vertical_stride + 1
    out_w = (w_p - kw) // horizontal_stride + 1
    cols = np.lib.stride_tricks.as_strided(
        x_p,
        shape=(batch, out_h, out_w, kh, kw, c),
        strides=(x_p.strides[0], vertical_stride * x_p.strides[1], horizontal_stride * x_p.strides[2],
                 x_p.strides[1], x_p.strides[2], x_p.strides[3])
    ).reshape(batch * out_h * out_w, kh * kw * c)
    return cols, out_h, out_w


def _dz_to_2d(dZ):
    out_h, out_w, num_filters, batch = dZ.shape
    return dZ.transpose(3, 0, 1, 2).reshape(batch * out_h * out_w, num_filters)


def convolve_forward_2d(X, weights, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    kh, kw, c, num_filters = weights.shape
    cols, out_h, out_w = _im2col(X, kh, kw, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride)
    out = cols @ weights.reshape(kh * kw * c, num_filters)
    return out.reshape(X.shape[3], out_h, out_w, num_filters).transpose(1, 2, 3, 0)


def convolve_backward_data_2d(X, weights, dZ, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    height, width, c, batch = X.shape
    kh, kw, _, num_filters = weights.shape
    out_h, out_w = dZ.shape[:2]
    dcols = _dz_to_2d(dZ) @ weights.reshape(kh * kw * c, num_filters).T
    dcols = np.ascontiguousarray(dcols.reshape(batch, out_h, out_w, kh, kw, c))
    dx_padded = np.zeros((batch, height + 2 * vertical_pad, width + 2 * horizontal_pad, c), dtype=dcols.dtype)
    _col2im(dcols, dx_padded, vertical_stride, horizontal_stride)
    dx = dx_padded[:, vertical_pad:vertical_pad + height, horizontal_pad:horizontal_pad + width, :]
    return dx.transpose(1, 2, 3, 0)


def convolve_backward_filter_2d(X, weights, dZ, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    kh, kw, c, num_filters = weights.shape
    cols, _, _ = _im2col(X, kh, kw, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride)
    return (cols.T @ _dz_to_2d(dZ)).reshape(kh, kw, c, num_filters)


# ============================================================================
# Max pooling backward
# ============================================================================

def pooling_max_backward_2d(Z, dZ, X, pool_h, pool_w, vertical_pad, horizontal_pad, vertical_stride, horizontal_stride):
    """Route each output gradient to the first maximal element of its window."""
    height, width = X.shape[:2]
    x_padded = pad_spatial(X, vertical_pad, horizontal_pad, value=-np.finfo(X.dtype).max)
    dx_padded = np.zeros(x_padded.shape, dtype=dZ.dtype)
    _max_pool_scatter(np.ascontiguousarray(x_padded), np.ascontiguousarray(dZ), dx_padded,
                      pool_h, pool_w, vertical_stride, horizontal_stride)
    return crop_spatial(dx_padded, vertical_pad, horizontal_pad, height, width)
