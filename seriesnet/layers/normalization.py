"""Cross channel (local response) normalization."""
from __future__ import annotations

from .. import strategies
from .base import Layer


class CrossChannelNormalization(Layer):
    """Normalize each element by the activity of neighbouring channels.

    For channel ``c`` the window covers ``(w - 1) // 2`` channels before it
    and the rest after it, clipped at the channel edges::

        Z = X / (k + alpha / w * sum(X[window] ** 2)) ** beta
    """
    default_name = 'crossnorm'
    host_strategy = strategies.LocalMapNorm2DHostStrategy
    gpu_strategy = strategies.LocalMapNorm2DGPUStrategy

    def __init__(self, window_channel_size: int, alpha: float = 1e-4, beta: float = 0.75, k: float = 2.0,
                 name: str = ''):
        super().__init__(name)
        if window_channel_size < 1:
            raise ValueError(f"window_channel_size must be a positive integer, got {window_channel_size}")
        self.window_channel_size = int(window_channel_size)
        self.alpha = alpha
        self.beta = beta
        self.k = k

    def forward(self, X):
        return self._strategy.forward(X, self.window_channel_size, self.alpha, self.beta, self.k)

    def backward(self, X, Z, dZ, memory):
        return self._strategy.backward(X, Z, dZ, self.window_channel_size, self.alpha, self.beta, self.k)

    def get_config(self):
        return {
            'name': self.name,
            'window_channel_size': self.window_channel_size,
            'alpha': self.alpha,
            'beta': self.beta,
            'k': self.k,
        }
