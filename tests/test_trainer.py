import numpy as np
import pytest

from seriesnet.data import ArrayDispatcher
from seriesnet.layers import ImageInput, FullyConnected, Softmax, CrossEntropy
from seriesnet.network import SeriesNetwork, infer_parameters
from seriesnet.options import training_options
from seriesnet.reporters import Reporter
from seriesnet.schedules import ConstantSchedule, PiecewiseSchedule, create_schedule
from seriesnet.trainer import Trainer


class CallRecorder(Reporter):
    def __init__(self):
        self.calls = []

    def start(self):
        self.calls.append(('start',))

    def report_iteration(self, epoch, iteration, elapsed_time, loss, accuracy, learn_rate):
        self.calls.append(('iteration', epoch, iteration, float(learn_rate)))

    def report_epoch(self, epoch, iteration, network):
        self.calls.append(('epoch', epoch, iteration))

    def finish(self):
        self.calls.append(('finish',))


class CountingDispatcher(ArrayDispatcher):
    num_shuffles = 0

    def shuffle(self):
        self.num_shuffles += 1
        super().shuffle()


def _network(precision, weights=None, weight_learn_rate_factor=1.0, weight_l2_factor=1.0):
    layers = infer_parameters([
        ImageInput((2, 2, 1), normalization='none'),
        FullyConnected(2, weights=weights, weight_learn_rate_factor=weight_learn_rate_factor,
                       weight_l2_factor=weight_l2_factor, rng=np.random.default_rng(0)),
        Softmax(),
        CrossEntropy(),
    ])
    layers = [layer.initialize_learnable_parameters(precision) for layer in layers]
    return SeriesNetwork(layers).prepare_network_for_training()


def test_piecewise_schedule_drops_every_period():
    schedule = PiecewiseSchedule(drop_factor=0.1, drop_period=5)
    rate = 1.0
    rates = []
    for epoch in range(1, 13):
        new_rate = schedule.update(rate, epoch)
        if new_rate != rate:
            rates.append(epoch)
        rate = new_rate
    assert rates == [5, 10]
    assert rate == pytest.approx(0.01)


def test_constant_schedule_and_factory():
    assert ConstantSchedule().update(0.5, 10) == 0.5
    assert isinstance(create_schedule('none'), ConstantSchedule)
    schedule = create_schedule('piecewise', drop_factor=0.5, drop_period=2)
    assert isinstance(schedule, PiecewiseSchedule)
    assert schedule.update(1.0, 2) == 0.5
    with pytest.raises(ValueError):
        create_schedule('exponential')


def test_trainer_reports_every_iteration_and_epoch(double):
    network = _network(double)
    X = np.random.default_rng(1).standard_normal((2, 2, 1, 10))
    labels = np.arange(10) % 2
    options = training_options(max_epochs=3, mini_batch_size=4, verbose=False,
                               learn_rate_schedule='piecewise', learn_rate_drop_period=2,
                               learn_rate_drop_factor=0.5, initial_learn_rate=0.2)
    reporter = CallRecorder()
    Trainer(options, double, reporter).train(network, ArrayDispatcher(X, labels, 4, 'discardLast', double))

    # 10 observations in batches of 4 with the last one discarded: 2 iterations per epoch
    assert reporter.calls[0] == ('start',)
    assert reporter.calls[-1] == ('finish',)
    epochs = [call for call in reporter.calls if call[0] == 'epoch']
    assert epochs == [('epoch', 1, 2), ('epoch', 2, 4), ('epoch', 3, 6)]
    iterations = [call for call in reporter.calls if call[0] == 'iteration']
    assert [call[2] for call in iterations] == [1, 2, 3, 4, 5, 6]
    assert [call[3] for call in iterations] == pytest.approx([0.2, 0.2, 0.2, 0.2, 0.1, 0.1])


@pytest.mark.parametrize('shuffle, expected', [('once', 1), ('never', 0)])
def test_trainer_shuffles_once_at_most(double, shuffle, expected):
    network = _network(double)
    X = np.zeros((2, 2, 1, 4))
    data = CountingDispatcher(X, [0, 1, 0, 1], 2, 'discardLast', double)
    options = training_options(max_epochs=3, shuffle=shuffle, verbose=False)
    Trainer(options, double, Reporter()).train(network, data)
    assert data.num_shuffles == expected


def test_velocity_includes_momentum_and_weight_decay(double):
    W = np.array([[1.0, -2.0, 0.5, 0.0], [0.25, 1.0, -1.0, 2.0]])
    network = _network(double, weights=W, weight_learn_rate_factor=2.0, weight_l2_factor=0.5)
    # all-zero data gives a zero weights gradient
    X = np.zeros((2, 2, 1, 2))
    options = training_options(momentum=0.9, initial_learn_rate=0.1, l2_regularization=0.01,
                               max_epochs=2, shuffle='never', verbose=False)
    data = ArrayDispatcher(X, [0, 1], 2, 'discardLast', double)
    trained = Trainer(options, double, Reporter()).train(network, data)

    alpha = 0.1 * 2.0
    decay = 0.01 * 0.5
    W4 = W.T.reshape(2, 2, 1, 2)
    v1 = -decay * alpha * W4
    W1 = W4 + v1
    v2 = 0.9 * v1 - decay * alpha * W1
    np.testing.assert_allclose(trained.learnable_parameters[0].value, W1 + v2)


def test_trainer_applies_augmentation_then_normalization(double):
    calls = []

    class Marker:
        def __init__(self, name):
            self.name = name
            self.type = name

        def apply(self, X):
            calls.append(self.name)
            return X

        def forward_propagate_size(self, size):
            return size

    network = _network(double)
    network.layers[0] = ImageInput((2, 2, 1), normalization=[Marker('normalize')],
                                   data_augmentation=[Marker('augment')])
    options = training_options(max_epochs=1, shuffle='never', verbose=False)
    data = ArrayDispatcher(np.zeros((2, 2, 1, 2)), [0, 1], 2, 'discardLast', double)
    Trainer(options, double, Reporter()).train(network, data)
    assert calls == ['augment', 'normalize']
