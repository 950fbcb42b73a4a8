"""Mini-batch stochastic gradient descent with momentum."""
from __future__ import annotations
import time
import logging

from . import cuda
from .layers import ImageInput
from .precision import Precision
from .reporters import Reporter
from .schedules import create_schedule

logger = logging.getLogger(__name__)


class Trainer:
    """Train a ``SeriesNetwork`` in its training representation.

    Every iteration computes the mini-batch gradients, divides them by the
    number of observations and applies::

        v = momentum * v - lr * lrf * l2 * l2f * W - lr * lrf * g
        W = W + v

    where ``lrf`` and ``l2f`` are the parameter's learn rate and L2 factors.
    """
    def __init__(self, options, precision: Precision, reporter: Reporter):
        self.options = options
        self.schedule = create_schedule(**options.learn_rate_schedule_settings)
        self.precision = precision
        self.reporter = reporter

    def train(self, network, data):
        options = self.options
        reporter = self.reporter
        momentum = self.precision.cast(options.momentum)
        learn_rate = self.precision.cast(options.initial_learn_rate)
        l2_regularization = self.precision.cast(options.l2_regularization)
        velocity = self._initialize_velocity(network)

        input_layer = network.layers[0]
        has_transforms = isinstance(input_layer, ImageInput)

        start_time = time.perf_counter()
        reporter.start()
        iteration = 0
        if options.shuffle == 'once':
            data.shuffle()
        logger.info("Training for %d epochs", options.max_epochs)
        for epoch in range(1, options.max_epochs + 1):
            data.start()
            while not data.is_done:
                X, Y = data.next()
                if has_transforms:
                    X = input_layer.apply_transforms(input_layer.apply_train_transforms(X))

                gradients, loss, accuracy = network.gradients(X, Y)
                num_observations = X.shape[3]
                gradients = [g / num_observations for g in gradients]

                velocity = self._compute_velocity(momentum, velocity, l2_regularization,
                                                  network.learnable_parameters, learn_rate, gradients)
                network.update_learnable_parameters(velocity)

                iteration += 1
                elapsed_time = time.perf_counter() - start_time
                reporter.report_iteration(epoch, iteration, elapsed_time, loss, accuracy, learn_rate)
            learn_rate = self.precision.cast(self.schedule.update(learn_rate, epoch))
            logger.debug("epoch %d done after %d iterations, learn rate %g", epoch, iteration, float(learn_rate))
            reporter.report_epoch(epoch, iteration, network)
        reporter.finish()
        return network

    def _initialize_velocity(self, network):
        velocity = []
        for parameter in network.learnable_parameters:
            xp = cuda.get_array_module(parameter.value)
            velocity.append(self.precision.cast(xp.zeros_like(parameter.value)))
        return velocity

    def _compute_velocity(self, momentum, velocity, l2_regularization, parameters, learn_rate, gradients):
        new_velocity = []
        for v, parameter, g in zip(velocity, parameters, gradients):
            alpha = learn_rate * self.precision.cast(parameter.learn_rate_factor)
            decay = l2_regularization * self.precision.cast(parameter.l2_factor)
            new_velocity.append(momentum * v - decay * alpha * parameter.value - alpha * g)
        return new_velocity
