"""Example usage of seriesnet: train a small CNN on synthetic stripe images.

Each 12x12 grayscale image shows either horizontal or vertical stripes plus
noise; the network learns to tell them apart.

Auto thread configuration occurs when importing seriesnet (sets BLAS threads to cpu cores).
"""
import logging
import numpy as np

import seriesnet as sn  # triggers auto thread setup before numpy heavy ops
from seriesnet import io


def make_stripes(num_images, size=12, rng=None):
    rng = rng or np.random.default_rng(0)
    X = np.zeros((size, size, 1, num_images), dtype=np.float32)
    labels = np.empty(num_images, dtype=object)
    stripes = (np.arange(size) % 4 < 2).astype(np.float32)
    for n in range(num_images):
        if rng.random() < 0.5:
            X[:, :, 0, n] = stripes[:, None]
            labels[n] = 'horizontal'
        else:
            X[:, :, 0, n] = stripes[None, :]
            labels[n] = 'vertical'
    X += 0.3 * rng.standard_normal(X.shape).astype(np.float32)
    return X, labels


def build_layers(num_classes=2):
    return [
        sn.ImageInput((12, 12, 1)),
        sn.Convolution2D(3, 8, padding=1),
        sn.ReLU(),
        sn.CrossChannelNormalization(5),
        sn.MaxPooling2D(2, stride=2),
        sn.FullyConnected(num_classes),
        sn.Softmax(),
        sn.CrossEntropy(),
    ]


def main():
    logging.basicConfig(level=logging.INFO)
    X_train, y_train = make_stripes(512)
    X_test, y_test = make_stripes(128, rng=np.random.default_rng(1))

    options = sn.training_options(
        'sgdm',
        max_epochs=5,
        mini_batch_size=32,
        initial_learn_rate=0.05,
        learn_rate_schedule='piecewise',
        learn_rate_drop_period=3,
        execution_environment='auto',
    )
    network, info = sn.train_network(X_train, y_train, build_layers(), options)
    print(f"Final mini-batch loss: {info.training_loss[-1]:.4f}")

    predicted = network.classify(X_test)
    print(f"Test accuracy: {np.mean(predicted == y_test) * 100:.2f}%")

    io.save_network('stripes.h5', network)
    restored = io.load_network('stripes.h5')
    same = np.array_equal(restored.classify(X_test), predicted)
    print(f"Reloaded network agrees with the trained one: {same}")


if __name__ == '__main__':
    main()
