"""seriesnet - convolutional neural network training and inference on numpy (and optionally cupy).

Provides:
- Layers (ImageInput, Convolution2D, FullyConnected, MaxPooling2D, AveragePooling2D,
  CrossChannelNormalization, ReLU, Dropout, Softmax, NullLayer, CrossEntropy)
- SeriesNetwork: a linear chain of layers with forward/backward passes
- Trainer: mini-batch SGD with momentum and learn rate schedules
- Host kernels (numpy + numba) and device kernels (cupy) behind per-layer execution strategies
- train_network: one-call training on in-memory images
- HDF5 checkpoint save/load via h5py
"""
import os as _os


def _auto_configure_threads():
    """Set BLAS / OpenMP thread counts to all available CPU cores if user
    hasn't specified them. Must run before NumPy loads heavy backends.

    Environment vars respected (won't override if already set):
    OMP_NUM_THREADS, OPENBLAS_NUM_THREADS, MKL_NUM_THREADS, NUMEXPR_NUM_THREADS.
    Disable by setting SERIESNET_DISABLE_AUTO_THREADS=1.
    """
    if _os.environ.get('SERIESNET_DISABLE_AUTO_THREADS') == '1':
        return
    cores = _os.cpu_count() or 1
    for var in [
        'OMP_NUM_THREADS', 'OPENBLAS_NUM_THREADS', 'MKL_NUM_THREADS', 'NUMEXPR_NUM_THREADS'
    ]:
        if var not in _os.environ:
            _os.environ[var] = str(cores)


_auto_configure_threads()

from . import cuda, errors, kernels, layers, learnable, strategies, transforms  # noqa: E402
from . import network, trainer, schedules, options, reporters, data, io  # noqa: E402
from .errors import (InvalidOperationError, ShapeMismatchError, SizeNotDeterminedError,  # noqa: E402
                     DeviceUnavailableError)
from .layers import (ImageInput, Convolution2D, FullyConnected, MaxPooling2D, AveragePooling2D,  # noqa: E402
                     CrossChannelNormalization, ReLU, Dropout, Softmax, NullLayer, CrossEntropy)
from .network import SeriesNetwork, infer_parameters  # noqa: E402
from .options import training_options, TrainingOptionsSGDM  # noqa: E402
from .precision import Precision  # noqa: E402
from .trainer import Trainer  # noqa: E402
from .train import train_network  # noqa: E402

__version__ = '0.1.0'

__all__ = [
    'cuda', 'errors', 'kernels', 'layers', 'learnable', 'strategies', 'transforms',
    'network', 'trainer', 'schedules', 'options', 'reporters', 'data', 'io',
    'InvalidOperationError', 'ShapeMismatchError', 'SizeNotDeterminedError', 'DeviceUnavailableError',
    'ImageInput', 'Convolution2D', 'FullyConnected', 'MaxPooling2D', 'AveragePooling2D',
    'CrossChannelNormalization', 'ReLU', 'Dropout', 'Softmax', 'NullLayer', 'CrossEntropy',
    'SeriesNetwork', 'infer_parameters', 'training_options', 'TrainingOptionsSGDM', 'Precision',
    'Trainer', 'train_network', '_auto_configure_threads',
]
