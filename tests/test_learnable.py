import numpy as np
import pytest

from seriesnet import cuda
from seriesnet.errors import DeviceUnavailableError
from seriesnet.layers import Convolution2D
from seriesnet.learnable import PredictionLearnableParameter, TrainingLearnableParameter

from conftest import requires_gpu


def _layer(double):
    return Convolution2D(3, 2, rng=np.random.default_rng(3)).infer_size((5, 5, 2)) \
        .initialize_learnable_parameters(double)


def test_training_prediction_round_trip_preserves_values(double):
    layer = _layer(double)
    training = layer.prepare_for_training()
    assert all(isinstance(p, TrainingLearnableParameter) for p in training.learnable_parameters)
    prediction = training.prepare_for_prediction()
    assert all(isinstance(p, PredictionLearnableParameter) for p in prediction.learnable_parameters)
    for before, after in zip(layer.learnable_parameters, prediction.learnable_parameters):
        np.testing.assert_array_equal(before.value, after.value)
        assert after.learn_rate_factor == before.learn_rate_factor
        assert after.l2_factor == before.l2_factor


def test_training_copy_is_independent_of_the_original(double):
    layer = _layer(double)
    original = layer.weights.copy()
    training = layer.prepare_for_training()
    training.learnable_parameters[0].value += 1.0
    np.testing.assert_array_equal(layer.weights, original)


def test_assigning_weights_does_not_leak_into_copies(double):
    layer = _layer(double)
    twin = layer.setup_for_host_prediction()
    twin.weights = np.zeros_like(twin.weights)
    assert np.any(layer.weights != 0)


def test_host_prediction_parameter_never_caches():
    parameter = PredictionLearnableParameter(np.ones(3))
    np.testing.assert_array_equal(parameter.value, np.ones(3))
    assert not parameter.is_cached
    parameter.value = np.zeros(3)
    np.testing.assert_array_equal(parameter.host_value, np.zeros(3))


def test_factors_survive_conversions():
    parameter = PredictionLearnableParameter(np.ones(2), learn_rate_factor=2.0, l2_factor=0.5)
    training = parameter.to_training()
    assert (training.learn_rate_factor, training.l2_factor) == (2.0, 0.5)
    back = training.to_prediction()
    assert (back.learn_rate_factor, back.l2_factor) == (2.0, 0.5)


@pytest.mark.skipif(cuda.cp is not None, reason='only meaningful without cupy')
def test_device_placement_without_cupy_raises():
    with pytest.raises(DeviceUnavailableError):
        PredictionLearnableParameter(np.ones(2), use_gpu=True).value


@requires_gpu
def test_device_cache_is_filled_on_read_and_dropped_on_write():
    parameter = PredictionLearnableParameter(np.ones(3), use_gpu=True)
    assert not parameter.is_cached
    value = parameter.value
    assert cuda.is_cuda_array(value)
    assert parameter.is_cached
    assert parameter.value is value
    parameter.value = np.zeros(3)
    assert not parameter.is_cached
    np.testing.assert_array_equal(cuda.to_cpu(parameter.value), np.zeros(3))


def test_device_cache_lifecycle_on_the_host(monkeypatch):
    transfers = []

    def copy_to_device(arr):
        transfers.append(arr)
        return np.array(arr, copy=True)

    monkeypatch.setattr(cuda, 'to_gpu', copy_to_device)
    parameter = PredictionLearnableParameter(np.ones(3), use_gpu=True)
    assert not parameter.is_cached
    value = parameter.value
    assert parameter.is_cached
    assert parameter.value is value
    assert len(transfers) == 1
    parameter.value = np.zeros(3)
    assert not parameter.is_cached
    np.testing.assert_array_equal(parameter.value, np.zeros(3))
    assert len(transfers) == 2
    np.testing.assert_array_equal(parameter.host_value, np.zeros(3))


def test_with_device_switches_residency_without_sharing_the_cache(monkeypatch):
    monkeypatch.setattr(cuda, 'to_gpu', lambda arr: np.array(arr, copy=True))
    host = PredictionLearnableParameter(np.arange(3.0), learn_rate_factor=2.0, l2_factor=0.5)
    assert host.value is host.host_value
    device = host.with_device(True)
    assert device.use_gpu and not device.is_cached
    assert (device.learn_rate_factor, device.l2_factor) == (2.0, 0.5)
    np.testing.assert_array_equal(device.value, np.arange(3.0))
    assert device.is_cached and not host.is_cached
    assert device.with_device(False).value is device.host_value
