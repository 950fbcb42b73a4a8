import numpy as np
import pytest

from seriesnet import cuda
from seriesnet.data import ArrayDispatcher
from seriesnet.errors import DeviceUnavailableError, InvalidOperationError, ShapeMismatchError
from seriesnet.layers import (ImageInput, Convolution2D, FullyConnected, MaxPooling2D, ReLU, Softmax,
                              CrossEntropy, Dropout)
from seriesnet.learnable import PredictionLearnableParameter, TrainingLearnableParameter
from seriesnet.network import SeriesNetwork, compute_accuracy, infer_parameters
from seriesnet.options import training_options
from seriesnet.reporters import TrainingInfoRecorder
from seriesnet.trainer import Trainer

from conftest import numerical_gradient, requires_gpu


def _small_network(precision, rng=None):
    rng = rng or np.random.default_rng(0)
    layers = infer_parameters([
        ImageInput((6, 6, 2), normalization='none'),
        Convolution2D(3, 4, padding=1, rng=rng),
        ReLU(),
        MaxPooling2D(2, stride=2),
        FullyConnected(3, rng=rng),
        Softmax(),
        CrossEntropy(),
    ])
    layers = [layer.initialize_learnable_parameters(precision) for layer in layers]
    return SeriesNetwork(layers)


def _one_hot(labels, num_classes):
    T = np.zeros((1, 1, num_classes, len(labels)))
    T[0, 0, labels, np.arange(len(labels))] = 1
    return T


def test_infer_parameters_names_layers_and_resolves_sizes():
    layers = infer_parameters([
        ImageInput((8, 8, 3)),
        Convolution2D(3, 4, name='first'),
        Convolution2D(3, 5),
        ReLU(), ReLU(),
        FullyConnected(2),
        CrossEntropy(),
    ])
    assert [layer.name for layer in layers] == [
        'imageinput_1', 'first', 'conv_1', 'relu_1', 'relu_2', 'fc_1', 'classoutput_1']
    assert layers[2].num_channels == 4
    assert layers[5].input_size == (4, 4, 5)
    assert layers[6].num_classes == 2


def test_infer_parameters_rejects_an_invalid_chain():
    with pytest.raises(ShapeMismatchError):
        infer_parameters([ImageInput((3, 3, 1)), MaxPooling2D(5), CrossEntropy()])
    with pytest.raises(ShapeMismatchError):
        infer_parameters([ImageInput((3, 3, 1)), FullyConnected(2), CrossEntropy(3)])


def test_network_gradients_match_finite_differences(rng, double):
    network = _small_network(double, rng)
    X = rng.standard_normal((6, 6, 2, 3))
    T = _one_hot([0, 2, 1], 3)
    gradients, loss, _ = network.gradients(X, T)
    parameters = network.learnable_parameters
    assert len(gradients) == len(parameters) == 4

    def total_loss():
        return network.output_layer.forward_loss(network.predict(X), T) * X.shape[3]

    assert loss * X.shape[3] == pytest.approx(total_loss())
    for parameter, gradient in zip(parameters, gradients):
        expected = numerical_gradient(total_loss, parameter.value)
        np.testing.assert_allclose(gradient, expected, rtol=1e-4, atol=1e-7)


def test_predict_applies_the_input_normalization(double):
    network = _small_network(double)
    average = np.full((6, 6, 2), 0.5)
    layers = list(network.layers)
    zero_center = ImageInput((6, 6, 2), normalization='zerocenter')
    zero_center.average_image = average
    layers[0] = zero_center
    centered = SeriesNetwork(layers)
    X = np.random.default_rng(1).standard_normal((6, 6, 2, 2))
    np.testing.assert_allclose(centered.predict(X + 0.5), network.predict(X))


def test_activations_stop_at_the_requested_layer(rng, double):
    network = _small_network(double, rng)
    X = rng.standard_normal((6, 6, 2, 2))
    assert network.activations(X, 0).shape == X.shape
    assert network.activations(X, 3).shape == (3, 3, 4, 2)
    assert network.predict(X).shape == (1, 1, 3, 2)


def test_dropout_is_skipped_by_predict(rng, double):
    network = _small_network(double, rng)
    layers = list(network.layers)
    layers.insert(4, Dropout(0.5))
    with_dropout = SeriesNetwork(layers)
    X = rng.standard_normal((6, 6, 2, 2))
    np.testing.assert_array_equal(with_dropout.predict(X), network.predict(X))


def test_classify_returns_class_names(double):
    network = _small_network(double)
    network.layers[-1].class_names = ['cat', 'dog', 'fish']
    X = np.random.default_rng(2).standard_normal((6, 6, 2, 4))
    labels = network.classify(X)
    scores = network.predict(X)
    expected = np.array(['cat', 'dog', 'fish'], dtype=object)[scores[0, 0].argmax(axis=0)]
    np.testing.assert_array_equal(labels, expected)


def test_accuracy_is_percentage_of_matching_argmax():
    Y = np.zeros((1, 1, 3, 4))
    Y[0, 0, [0, 1, 2, 0], [0, 1, 2, 3]] = 1
    T = _one_hot([0, 1, 1, 0], 3)
    assert compute_accuracy(Y, T) == 75.0


def test_update_learnable_parameters_requires_one_delta_per_parameter(double):
    network = _small_network(double).prepare_network_for_training()
    with pytest.raises(InvalidOperationError):
        network.update_learnable_parameters([np.zeros(1)])


def test_update_learnable_parameters_adds_in_place(double):
    network = _small_network(double).prepare_network_for_training()
    before = [p.value.copy() for p in network.learnable_parameters]
    deltas = [np.ones_like(b) for b in before]
    arrays = [p.value for p in network.learnable_parameters]
    network.update_learnable_parameters(deltas)
    for parameter, old, array in zip(network.learnable_parameters, before, arrays):
        np.testing.assert_allclose(parameter.value, old + 1)
        # training values are updated in their own buffers
        assert parameter.value is array


def test_update_leaves_prediction_values_of_other_copies_alone(double):
    network = _small_network(double).prepare_network_for_prediction()
    other = network.setup_network_for_host_prediction()
    before = [p.value.copy() for p in other.learnable_parameters]
    network.update_learnable_parameters([np.ones_like(b) for b in before])
    for parameter, old in zip(other.learnable_parameters, before):
        np.testing.assert_array_equal(parameter.value, old)


def test_mode_switches_return_new_networks(double):
    network = _small_network(double)
    training = network.prepare_network_for_training()
    assert training is not network
    assert all(isinstance(p, TrainingLearnableParameter) for p in training.learnable_parameters)
    assert all(isinstance(p, PredictionLearnableParameter) for p in network.learnable_parameters)
    prediction = training.prepare_network_for_prediction()
    for a, b in zip(network.learnable_parameters, prediction.learnable_parameters):
        np.testing.assert_array_equal(a.value, b.value)
    host = prediction.setup_network_for_host_prediction()
    assert not any(layer.uses_gpu for layer in host.layers)


def test_gpu_setup_without_a_device_raises(double):
    network = _small_network(double)
    with pytest.raises(DeviceUnavailableError):
        network.setup_network_for_gpu_prediction(cuda.HOST_ONLY)


def test_probe_honours_the_disable_switch(monkeypatch):
    monkeypatch.setenv('SERIESNET_DISABLE_CUDA', '1')
    capability = cuda.probe()
    assert not capability.available
    assert 'SERIESNET_DISABLE_CUDA' in capability.reason


@requires_gpu
def test_gpu_prediction_matches_host_prediction(capability, double, rng):
    network = _small_network(double, rng)
    X = rng.standard_normal((6, 6, 2, 3))
    gpu = network.setup_network_for_gpu_prediction(capability)
    np.testing.assert_allclose(cuda.to_cpu(gpu.predict(X)), network.predict(X), rtol=1e-6, atol=1e-9)


def test_three_layer_network_single_iteration(double):
    rng = np.random.default_rng(5)
    W = rng.standard_normal((2, 16))
    b = np.array([0.1, -0.2])
    layers = infer_parameters([
        ImageInput((4, 4, 1), normalization='none'),
        FullyConnected(2, weights=W, bias=b),
        Softmax(),
        CrossEntropy(),
    ])
    layers = [layer.initialize_learnable_parameters(double) for layer in layers]
    network = SeriesNetwork(layers).prepare_network_for_training()

    X = rng.standard_normal((4, 4, 1, 2))
    labels = np.array([0, 1])
    learn_rate = 0.1
    options = training_options(momentum=0.0, l2_regularization=0.0, initial_learn_rate=learn_rate,
                               max_epochs=1, mini_batch_size=2, shuffle='never', verbose=False)
    recorder = TrainingInfoRecorder()
    data = ArrayDispatcher(X, labels, 2, 'discardLast', double)
    trained = Trainer(options, double, recorder).train(network, data)

    # by hand
    x = X.reshape(16, 2)
    scores = W @ x + b[:, None]
    e = np.exp(scores - scores.max(axis=0))
    Y = e / e.sum(axis=0)
    T = np.eye(2)[:, labels]
    expected_loss = -np.sum(T * np.log(Y)) / 2
    grad_W = (Y - T) @ x.T / 2
    grad_b = (Y - T).sum(axis=1) / 2

    assert len(recorder.info) == 1
    assert recorder.info.training_loss[0] == pytest.approx(expected_loss)
    new_W, new_b = [p.value for p in trained.learnable_parameters]
    expected_W = (W - learn_rate * grad_W).T.reshape(4, 4, 1, 2)
    np.testing.assert_allclose(new_W, expected_W, rtol=1e-10, atol=1e-12)
    np.testing.assert_allclose(new_b.ravel(), b - learn_rate * grad_b, rtol=1e-10, atol=1e-12)
