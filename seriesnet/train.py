"""Train a series network on in-memory images."""
from __future__ import annotations
import logging
import warnings
from typing import Sequence, Tuple

import numpy as np

from . import cuda
from .data import ArrayDispatcher
from .errors import ShapeMismatchError
from .layers import ImageInput, CrossEntropy, Layer
from .network import SeriesNetwork, infer_parameters
from .options import TrainingOptionsSGDM
from .precision import Precision
from .reporters import (VectorReporter, ProgressDisplayer, ProgressBar, TrainingInfoRecorder, CheckpointSaver,
                        TrainingInfo)
from .trainer import Trainer

logger = logging.getLogger(__name__)


def _select_capability(execution_environment: str) -> cuda.DeviceCapability:
    if execution_environment == 'cpu':
        return cuda.HOST_ONLY
    capability = cuda.probe()
    if execution_environment == 'gpu':
        cuda.require(capability)
    elif not capability.available:
        logger.info("No usable CUDA device (%s); training on the host", capability.reason)
    return capability


def _compute_average_image(dispatcher: ArrayDispatcher, augmentations) -> np.ndarray:
    accum = 0.0
    num_images = 0
    for X, _ in dispatcher:
        for transform in augmentations:
            X = transform.apply(X)
        accum = accum + np.asarray(X, dtype=np.float64).sum(axis=3)
        num_images += X.shape[3]
    return accum / num_images


def to_prediction_network(network: SeriesNetwork) -> SeriesNetwork:
    return network.prepare_network_for_prediction()


def train_network(X, Y, layers: Sequence[Layer], options: TrainingOptionsSGDM,
                  precision: Precision = None) -> Tuple[SeriesNetwork, TrainingInfo]:
    """Train ``layers`` on images ``X`` (H, W, C, N) with labels ``Y`` (N,).

    Returns the trained network in its prediction representation and the
    per-iteration training history.
    """
    if not isinstance(options, TrainingOptionsSGDM):
        raise TypeError(f"options must be created with training_options(), got {type(options).__name__}")
    layers = list(layers)
    if not layers or not isinstance(layers[0], ImageInput) or not isinstance(layers[-1], CrossEntropy):
        raise ValueError("layers must start with an ImageInput layer and end with a CrossEntropy layer")
    X = np.asarray(X)
    if not np.issubdtype(X.dtype, np.number) or np.iscomplexobj(X):
        raise ValueError("X must be a real numeric array")
    if X.ndim == 3:
        X = X[:, :, None, :]
    if Y is None or np.asarray(Y).reshape(-1).shape[0] != X.shape[3]:
        raise ValueError("X and Y must have the same number of observations")

    precision = precision or Precision('single')
    capability = _select_capability(options.execution_environment)
    use_gpu = capability.available and options.execution_environment != 'cpu'

    dispatcher = ArrayDispatcher(X, Y, options.mini_batch_size, 'discardLast', precision)
    class_names = dispatcher.class_names

    layers = infer_parameters(layers)
    num_outputs = layers[-1].num_classes
    if num_outputs != len(class_names):
        raise ShapeMismatchError(
            f"The output size ({num_outputs}) of the last layer does not match the number of classes "
            f"({len(class_names)})")
    if not layers[0].is_valid_training_image_size(dispatcher.image_size):
        raise ShapeMismatchError(
            f"The training images are of size {dispatcher.image_size} but the input layer expects "
            f"images of size {layers[0].input_size}")

    layers = [layer.initialize_learnable_parameters(precision) for layer in layers]
    layers[-1] = layers[-1]._copy()
    layers[-1].class_names = list(class_names)

    network = SeriesNetwork(layers)
    if use_gpu:
        network = network.setup_network_for_gpu_prediction(capability)
    network = network.prepare_network_for_training()

    input_layer = network.layers[0]
    if input_layer.average_image is None and any(t.type == 'zerocenter' for t in input_layer.transforms):
        average_data = ArrayDispatcher(X, Y, options.mini_batch_size, 'truncateLast', precision)
        input_layer.average_image = precision.cast(
            _compute_average_image(average_data, input_layer.train_transforms))

    reporter = VectorReporter()
    if options.verbose:
        reporter.add(ProgressDisplayer())
        reporter.add(ProgressBar(options.max_epochs, dispatcher.num_iterations_per_epoch))
    if options.checkpoint_path:
        reporter.add(CheckpointSaver(options.checkpoint_path, to_prediction_network))
    recorder = TrainingInfoRecorder()
    reporter.add(recorder)

    if len(dispatcher.class_names) < 2:
        warnings.warn("Training data contains a single class; accuracy will be trivially 100%")

    trainer = Trainer(options, precision, reporter)
    network = trainer.train(network, dispatcher)
    return to_prediction_network(network), recorder.info
