"""Mini-batch gradient descent with momentum, driving a Network's single-pass primitives."""

import numpy as np
from typing import Dict, List, Optional
import logging
import time

from fluid_mlp.errors import ConfigurationError, NotReadyError
from fluid_mlp.network import Network, mse_loss

DEFAULT_EPOCHS = 1000
DEFAULT_BATCH_SIZE = 50
DEFAULT_LEARNING_RATE = 0.01
DEFAULT_MOMENTUM = 0.9
DEFAULT_PATIENCE = 20


def train_batch(
    network: Network,
    X_batch: np.ndarray,
    y_batch: np.ndarray,
    learning_rate: float,
    momentum: float,
) -> float:
    """
    Trains the network on a single batch of data.

    Performs forward pass, loss calculation, backward pass, and parameter update.

    Returns:
        The loss of the batch before the update.
    """
    network.zero_grad()
    outputs = network.forward(X_batch)
    loss, gradient = mse_loss(outputs, y_batch)
    if not np.isfinite(loss):
        logging.warning(f"Non-finite loss ({loss}) in training batch. Check the learning rate and inputs.")
    network.backward(gradient)
    network.update(learning_rate, momentum)
    return loss


def train(
    network: Network,
    inputs: np.ndarray,
    targets: np.ndarray,
    epochs: int = DEFAULT_EPOCHS,
    batch_size: int = DEFAULT_BATCH_SIZE,
    learning_rate: float = DEFAULT_LEARNING_RATE,
    momentum: float = DEFAULT_MOMENTUM,
    validation_fraction: float = 0.0,
    patience: int = DEFAULT_PATIENCE,
    shuffle: bool = True,
    rng: Optional[np.random.Generator] = None,
    log_every: int = 100,
) -> Dict[str, List]:
    """
    Trains ``network`` on (inputs, targets) with mini-batch gradient descent and momentum.

    Args:
        network: An initialized Network whose output width matches ``targets``.
        inputs: Training inputs (num_samples, dims()).
        targets: Training targets (num_samples, output_dim).
        epochs: Maximum number of passes over the training data.
        batch_size: Mini-batch size; clamped to the number of training samples.
        learning_rate: Step size of each update.
        momentum: Decay of the per-layer update velocity, in [0, 1).
        validation_fraction: Fraction of samples held out for validation, in [0, 1).
                             When > 0, training stops early once the validation loss
                             has not improved for ``patience`` epochs.
        patience: Epochs without validation improvement before stopping.
        shuffle: Whether to reshuffle the training data every epoch.
        rng: Random generator for the split and shuffling. Defaults to the network's.
        log_every: Log progress every ``log_every`` epochs.

    Returns:
        A dictionary with per-epoch 'epoch', 'loss', 'val_loss' and 'time_per_epoch'.

    Raises:
        NotReadyError: If the network has not been initialized.
        ConfigurationError: On mismatched data or invalid hyperparameters.
    """
    if not network.initialized or network.layer_count == 0:
        raise NotReadyError("Network must be initialized before training.")

    X = np.asarray(inputs, dtype=float)
    y = np.asarray(targets, dtype=float)
    if X.ndim != 2 or y.ndim != 2:
        raise ConfigurationError(f"Inputs and targets must be 2D arrays, got {X.shape} and {y.shape}")
    num_samples = X.shape[0]
    if y.shape[0] != num_samples:
        raise ConfigurationError("Number of samples in inputs and targets must match.")
    if num_samples == 0:
        raise ConfigurationError("Cannot train on an empty dataset.")
    if y.shape[1] != network.output_size(network.layer_count - 1):
        raise ConfigurationError(
            f"Targets have {y.shape[1]} columns, network outputs "
            f"{network.output_size(network.layer_count - 1)}"
        )
    if learning_rate <= 0.0:
        raise ConfigurationError(f"learning_rate must be positive, got {learning_rate}")
    if not 0.0 <= momentum < 1.0:
        raise ConfigurationError(f"momentum must be in [0, 1), got {momentum}")
    if not 0.0 <= validation_fraction < 1.0:
        raise ConfigurationError("validation_fraction must be between 0.0 and 1.0")
    if epochs <= 0:
        raise ConfigurationError(f"epochs must be positive, got {epochs}")

    rng = rng if rng is not None else network.rng

    # Prepare training and validation sets
    X_val, y_val = None, None
    X_train, y_train = X, y
    if validation_fraction > 0.0:
        split_idx = int(num_samples * (1.0 - validation_fraction))
        if split_idx == 0 or split_idx == num_samples:
            raise ConfigurationError(
                f"validation_fraction {validation_fraction} leaves an empty split for {num_samples} samples"
            )
        indices = rng.permutation(num_samples)
        X_train, X_val = X[indices[:split_idx]], X[indices[split_idx:]]
        y_train, y_val = y[indices[:split_idx]], y[indices[split_idx:]]
        logging.info(f"Training on {len(X_train)} samples, validating on {len(X_val)} samples.")
    else:
        logging.info(f"Training on {len(X_train)} samples, no validation split.")

    num_train_samples = X_train.shape[0]
    if batch_size <= 0 or batch_size > num_train_samples:
        logging.warning(f"Batch size ({batch_size}) is out of range. Setting batch size to {num_train_samples}.")
        batch_size = num_train_samples

    history: Dict[str, List] = {
        'epoch': [],
        'loss': [],
        'val_loss': [],
        'time_per_epoch': [],
    }
    best_val_loss = np.inf
    epochs_without_improvement = 0

    for epoch in range(epochs):
        epoch_start_time = time.time()
        epoch_loss = 0.0

        if shuffle:
            indices = rng.permutation(num_train_samples)
            X_train = X_train[indices]
            y_train = y_train[indices]

        for start_idx in range(0, num_train_samples, batch_size):
            X_batch = X_train[start_idx:start_idx + batch_size]
            y_batch = y_train[start_idx:start_idx + batch_size]
            batch_loss = train_batch(network, X_batch, y_batch, learning_rate, momentum)
            # Weight by batch size for an accurate epoch average
            epoch_loss += batch_loss * len(X_batch)

        epoch_loss /= num_train_samples
        epoch_time = time.time() - epoch_start_time

        val_loss = None
        if X_val is not None:
            val_loss = network.loss(network.forward(X_val), y_val)

        history['epoch'].append(epoch)
        history['loss'].append(epoch_loss)
        history['val_loss'].append(val_loss)
        history['time_per_epoch'].append(epoch_time)

        if log_every > 0 and (epoch % log_every == 0 or epoch == epochs - 1):
            msg = f"Epoch {epoch+1}/{epochs} - loss: {epoch_loss:.5f}"
            if val_loss is not None:
                msg += f" - val_loss: {val_loss:.5f}"
            msg += f" - time: {epoch_time:.2f}s"
            logging.info(msg)

        if val_loss is not None:
            if val_loss < best_val_loss:
                best_val_loss = val_loss
                epochs_without_improvement = 0
            else:
                epochs_without_improvement += 1
                if epochs_without_improvement >= patience:
                    logging.info(f"Validation loss has not improved for {patience} epochs; stopping at epoch {epoch+1}.")
                    break

    if np.isfinite(history['loss'][-1]):
        network.set_trained(True)
        logging.info("Training finished.")
    else:
        logging.warning("Training finished with a non-finite loss; network not marked as trained.")
    return history
