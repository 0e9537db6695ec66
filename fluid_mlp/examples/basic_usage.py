import logging
import time

import matplotlib.pyplot as plt
import numpy as np
from sklearn.datasets import make_moons

from fluid_mlp import ActivationType, Network, train

# --- Plotting Function ---

def plot_decision_boundary(X: np.ndarray, y_raw: np.ndarray, model: Network, title: str = "Decision Boundary"):
    """Plots the decision boundary of a trained single-output model.

    Args:
        X: Input features used for training, shape (n_samples, 2).
        y_raw: True integer class labels, shape (n_samples,).
        model: Trained Network with one output, thresholded at 0.5.
        title: Figure title.
    """
    h = 0.02

    x_min, x_max = X[:, 0].min() - 0.5, X[:, 0].max() + 0.5
    y_min, y_max = X[:, 1].min() - 0.5, X[:, 1].max() + 0.5
    xx, yy = np.meshgrid(np.arange(x_min, x_max, h),
                         np.arange(y_min, y_max, h))

    mesh_points = np.c_[xx.ravel(), yy.ravel()]
    Z = (model.forward(mesh_points) >= 0.5).astype(int).ravel()
    Z = Z.reshape(xx.shape)

    plt.figure(title, figsize=(8, 6))
    plt.contourf(xx, yy, Z, cmap=plt.cm.Spectral, alpha=0.8)
    plt.scatter(X[:, 0], X[:, 1], c=y_raw, cmap=plt.cm.Spectral, edgecolor='k', s=35)
    plt.xlabel("Feature 1")
    plt.ylabel("Feature 2")
    plt.title(title)
    plt.xlim(xx.min(), xx.max())
    plt.ylim(yy.min(), yy.max())
    plt.grid(True, alpha=0.2)


def plot_history(history, title: str):
    plt.figure(title, figsize=(8, 5))
    plt.plot(history['epoch'], history['loss'], label='Training Loss')
    if any(v is not None for v in history['val_loss']):
        plt.plot(history['epoch'], history['val_loss'], label='Validation Loss', linestyle='--')
    plt.xlabel('Epoch')
    plt.ylabel('Loss (MSE)')
    plt.title(title)
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.ylim(bottom=0)
    plt.tight_layout()


# --- XOR Example ---

def xor_example(rng: np.random.Generator) -> Network:
    """Trains a small network on the XOR mapping and checks frame-by-frame inference."""
    logger = logging.getLogger("XORExample")

    X = np.array([[0, 0], [0, 1], [1, 0], [1, 1]], dtype=float)
    y = np.array([[0], [1], [1], [0]], dtype=float)

    network = Network(rng=rng)
    network.init(input_size=2, output_size=1, hidden_sizes=[8],
                 hidden_activation=ActivationType.TANH,
                 output_activation=ActivationType.IDENTITY)
    logger.info(f"XOR Network Summary:\n{network.summary()}")

    history = train(network, X, y, epochs=3000, batch_size=4,
                    learning_rate=0.05, momentum=0.9, rng=rng, log_every=500)

    # Frame-at-a-time inference, as a real-time host would call it
    out = np.zeros(1)
    for inputs, target in zip(X, y):
        network.process_frame(inputs, out=out)
        logger.info(f"Input: {inputs}, Target: {target[0]:.0f}, Prediction: {out[0]:.4f}")

    plot_history(history, "XOR Training History")
    plot_decision_boundary(X, y.ravel(), network, "XOR Decision Boundary")
    return network


# --- Make Moons Example ---

def make_moons_example(rng: np.random.Generator) -> Network:
    """Trains on make_moons with a validation split, then rebuilds the model from its parameters."""
    logger = logging.getLogger("MakeMoonsExample")

    X_original, y_raw = make_moons(n_samples=300, noise=0.1, random_state=42)
    X = (X_original - X_original.mean(axis=0)) / (X_original.std(axis=0) + 1e-8)
    y = y_raw.reshape(-1, 1).astype(float)

    network = Network(rng=rng)
    network.init(input_size=2, output_size=1, hidden_sizes=[16, 16],
                 hidden_activation=ActivationType.RELU,
                 output_activation=ActivationType.SIGMOID)
    print(network.summary())

    start_time = time.time()
    history = train(network, X, y, epochs=1500, batch_size=32, learning_rate=0.05,
                    momentum=0.9, validation_fraction=0.2, patience=100, rng=rng, log_every=100)
    logger.info(f"Total training time: {time.time() - start_time:.2f} seconds")

    # Round-trip the learned state into a fresh network, as a persistence layer would
    restored = Network()
    restored.init(**network.topology())
    for i in range(network.layer_count):
        restored.set_parameters(i, *network.get_parameters(i))
    restored.set_trained(network.trained)
    logger.info(f"Restored network loss: {restored.loss(restored.forward(X), y):.5f}")

    accuracy = np.mean((restored.forward(X) >= 0.5) == (y >= 0.5))
    logger.info(f"Accuracy on training+validation data: {accuracy:.2%}")

    # Hidden features from the first layer, e.g. for visualization or clustering
    features = network.forward(X, end_layer=0)
    logger.info(f"First-layer feature matrix shape: {features.shape}")

    plot_history(history, "Make Moons Training History")
    plot_decision_boundary(X, y_raw, restored, "Make Moons Decision Boundary")
    return restored


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    rng = np.random.default_rng(7)

    print("\n" + "="*40)
    print("--- Running XOR Example ---")
    print("="*40)
    xor_example(rng)

    print("\n" + "="*40)
    print("--- Running Make Moons Example ---")
    print("="*40)
    make_moons_example(rng)

    print("\nDisplaying plots. Close plot windows to exit.")
    plt.show()
