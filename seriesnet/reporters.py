"""Training progress reporters.

A reporter receives ``start``, one ``report_iteration`` per mini-batch, one
``report_epoch`` per epoch and a final ``finish``. ``VectorReporter`` fans the
calls out to several reporters in order; an exception raised by any of them
propagates to the trainer.
"""
from __future__ import annotations
import os
import time
import logging
from typing import Callable, List, Optional

import numpy as np
from tqdm import tqdm

from . import cuda, io

logger = logging.getLogger(__name__)


def _to_float(value) -> float:
    return float(cuda.to_cpu(value))


class Reporter:
    def start(self):
        pass

    def report_iteration(self, epoch, iteration, elapsed_time, loss, accuracy, learn_rate):
        pass

    def report_epoch(self, epoch, iteration, network):
        pass

    def finish(self):
        pass


class VectorReporter(Reporter):
    def __init__(self, reporters: Optional[List[Reporter]] = None):
        self.reporters: List[Reporter] = list(reporters or [])

    def add(self, reporter: Reporter):
        self.reporters.append(reporter)

    def start(self):
        for reporter in self.reporters:
            reporter.start()

    def report_iteration(self, epoch, iteration, elapsed_time, loss, accuracy, learn_rate):
        for reporter in self.reporters:
            reporter.report_iteration(epoch, iteration, elapsed_time, loss, accuracy, learn_rate)

    def report_epoch(self, epoch, iteration, network):
        for reporter in self.reporters:
            reporter.report_epoch(epoch, iteration, network)

    def finish(self):
        for reporter in self.reporters:
            reporter.finish()


class ProgressDisplayer(Reporter):
    """Print a table row every ``frequency`` iterations."""
    BORDER = '|' + '=' * 97 + '|'
    HEADINGS = ('|    Epoch     |  Iteration   | Time Elapsed |  Mini-batch  |  Mini-batch  | Base Learning|\n'
                '|              |              |  (seconds)   |     Loss     |   Accuracy   |     Rate     |')

    def __init__(self, frequency: int = 50, write: Callable[[str], None] = tqdm.write):
        self.frequency = frequency
        self.write = write

    def start(self):
        self.write(self.BORDER)
        self.write(self.HEADINGS)
        self.write(self.BORDER)

    def report_iteration(self, epoch, iteration, elapsed_time, loss, accuracy, learn_rate):
        if iteration % self.frequency == 0:
            self.write(f"| {epoch:12d} | {iteration:12d} | {elapsed_time:12.2f} | {_to_float(loss):12.4f} | "
                       f"{_to_float(accuracy):11.2f}% | {_to_float(learn_rate):12f} |")

    def finish(self):
        self.write(self.BORDER)


class ProgressBar(Reporter):
    """One tqdm bar per epoch showing the running loss and accuracy."""
    def __init__(self, max_epochs: int, iterations_per_epoch: Optional[int] = None):
        self.max_epochs = max_epochs
        self.iterations_per_epoch = iterations_per_epoch
        self._bar = None
        self._epoch = None

    def report_iteration(self, epoch, iteration, elapsed_time, loss, accuracy, learn_rate):
        if epoch != self._epoch:
            self._close()
            self._epoch = epoch
            self._bar = tqdm(total=self.iterations_per_epoch, desc=f"Epoch {epoch}/{self.max_epochs}")
        self._bar.update(1)
        self._bar.set_postfix(loss=_to_float(loss), acc=_to_float(accuracy), lr=_to_float(learn_rate))

    def report_epoch(self, epoch, iteration, network):
        self._close()

    def finish(self):
        self._close()

    def _close(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class TrainingInfo:
    """Per-iteration training history."""
    def __init__(self):
        self.training_loss: List[float] = []
        self.training_accuracy: List[float] = []
        self.base_learn_rate: List[float] = []

    def to_dict(self):
        return {
            'training_loss': np.asarray(self.training_loss),
            'training_accuracy': np.asarray(self.training_accuracy),
            'base_learn_rate': np.asarray(self.base_learn_rate),
        }

    def __len__(self):
        return len(self.training_loss)


class TrainingInfoRecorder(Reporter):
    def __init__(self):
        self.info = TrainingInfo()

    def start(self):
        self.info = TrainingInfo()

    def report_iteration(self, epoch, iteration, elapsed_time, loss, accuracy, learn_rate):
        self.info.training_loss.append(_to_float(loss))
        self.info.training_accuracy.append(_to_float(accuracy))
        self.info.base_learn_rate.append(_to_float(learn_rate))


class CheckpointSaver(Reporter):
    """Write the network to ``checkpoint_path`` at the end of every epoch.

    ``convertor`` turns the training network into the form that is saved,
    typically its prediction representation.
    """
    def __init__(self, checkpoint_path: str, convertor: Optional[Callable] = None):
        self.checkpoint_path = checkpoint_path
        self.convertor = convertor
        self.saved: List[str] = []

    def report_epoch(self, epoch, iteration, network):
        if self.convertor is not None:
            network = self.convertor(network)
        timestamp = time.strftime('%Y_%m_%d__%H_%M_%S')
        path = os.path.join(self.checkpoint_path, f"seriesnet_checkpoint__{iteration}__{timestamp}.h5")
        io.save_network(path, network)
        self.saved.append(path)
        logger.info("Saved checkpoint for epoch %d to %s", epoch, path)
