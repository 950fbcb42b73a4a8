"""Execution strategies: where a layer's kernels run.

Each layer type owns one strategy object. The host and GPU variants of a
strategy share the same arithmetic and differ only in the kernel module they
call and in where they place their operands, so swapping one for the other
never changes numeric results.
"""
from __future__ import annotations

from . import cuda
from .kernels import host as host_kernels
from .kernels import device as device_kernels


class ExecutionStrategy:
    """Abstract strategy base class."""
    kernels = None
    use_gpu = False

    def place(self, arr):
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class HostPlacement(ExecutionStrategy):
    kernels = host_kernels
    use_gpu = False

    def place(self, arr):
        return cuda.to_cpu(arr)


class GPUPlacement(ExecutionStrategy):
    kernels = device_kernels
    use_gpu = True

    def place(self, arr):
        return cuda.to_gpu(arr)


# ============================================================================
# Per layer type arithmetic
# ============================================================================

class Convolution2DStrategy(ExecutionStrategy):
    """Also used by the fully connected layer (padding 0, stride 1)."""
    def forward(self, X, weights, bias, padding, stride):
        Z = self.kernels.convolve_forward_2d(self.place(X), self.place(weights), *padding, *stride)
        Z = Z + self.place(bias).reshape(1, 1, -1, 1)
        return Z, None

    def backward(self, X, weights, dZ, padding, stride):
        return self.kernels.convolve_backward_data_2d(
            self.place(X), self.place(weights), self.place(dZ), *padding, *stride)

    def gradients(self, X, weights, dZ, padding, stride):
        dZ = self.place(dZ)
        weights_gradient = self.kernels.convolve_backward_filter_2d(
            self.place(X), self.place(weights), dZ, *padding, *stride)
        bias_gradient = self.kernels.convolve_backward_bias_2d(dZ)
        return [weights_gradient, bias_gradient]


class MaxPooling2DStrategy(ExecutionStrategy):
    def forward(self, X, pool_size, padding, stride):
        return self.kernels.pooling_max_forward_2d(self.place(X), *pool_size, *padding, *stride), None

    def backward(self, X, Z, dZ, pool_size, padding, stride):
        return self.kernels.pooling_max_backward_2d(
            self.place(Z), self.place(dZ), self.place(X), *pool_size, *padding, *stride)


class AveragePooling2DStrategy(ExecutionStrategy):
    def forward(self, X, pool_size, padding, stride):
        return self.kernels.pooling_average_forward_2d(self.place(X), *pool_size, *padding, *stride), None

    def backward(self, X, Z, dZ, pool_size, padding, stride):
        return self.kernels.pooling_average_backward_2d(
            self.place(Z), self.place(dZ), self.place(X), *pool_size, *padding, *stride)


class LocalMapNorm2DStrategy(ExecutionStrategy):
    def forward(self, X, window_channel_size, alpha, beta, k):
        return self.kernels.local_map_norm_forward_2d(self.place(X), window_channel_size, alpha, beta, k), None

    def backward(self, X, Z, dZ, window_channel_size, alpha, beta, k):
        return self.kernels.local_map_norm_backward_2d(
            self.place(Z), self.place(dZ), self.place(X), window_channel_size, alpha, beta, k)


class SoftmaxStrategy(ExecutionStrategy):
    def forward(self, X):
        return self.kernels.softmax_forward_2d(self.place(X)), None

    def backward(self, Z, dZ):
        return self.kernels.softmax_backward_2d(self.place(Z), self.place(dZ))


class ReLUStrategy(ExecutionStrategy):
    def forward(self, X):
        return self.kernels.relu_forward(self.place(X)), None

    def backward(self, X, Z, dZ):
        return self.kernels.relu_backward(self.place(Z), self.place(dZ), self.place(X))


# ============================================================================
# Concrete strategies
# ============================================================================

class Convolution2DHostStrategy(HostPlacement, Convolution2DStrategy):
    pass


class Convolution2DGPUStrategy(GPUPlacement, Convolution2DStrategy):
    pass


class MaxPooling2DHostStrategy(HostPlacement, MaxPooling2DStrategy):
    pass


class MaxPooling2DGPUStrategy(GPUPlacement, MaxPooling2DStrategy):
    pass


class AveragePooling2DHostStrategy(HostPlacement, AveragePooling2DStrategy):
    pass


class AveragePooling2DGPUStrategy(GPUPlacement, AveragePooling2DStrategy):
    pass


class LocalMapNorm2DHostStrategy(HostPlacement, LocalMapNorm2DStrategy):
    pass


class LocalMapNorm2DGPUStrategy(GPUPlacement, LocalMapNorm2DStrategy):
    pass


class SoftmaxHostStrategy(HostPlacement, SoftmaxStrategy):
    pass


class SoftmaxGPUStrategy(GPUPlacement, SoftmaxStrategy):
    pass


class ReLUHostStrategy(HostPlacement, ReLUStrategy):
    pass


class ReLUGPUStrategy(GPUPlacement, ReLUStrategy):
    pass
