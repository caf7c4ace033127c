import time
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union
import logging

from .losses import Loss, get_loss
from .network import Network
from .optimizers import SGD


@dataclass
class TrainingHistory:
    """Per-epoch record produced by `fit`."""
    epoch: List[int] = field(default_factory=list)
    loss: List[float] = field(default_factory=list)
    val_loss: List[Optional[float]] = field(default_factory=list)
    learning_rate: List[float] = field(default_factory=list)
    time_per_epoch: List[float] = field(default_factory=list)

    def as_dict(self) -> Dict[str, List]:
        return {
            'epoch': self.epoch,
            'loss': self.loss,
            'val_loss': self.val_loss,
            'learning_rate': self.learning_rate,
            'time_per_epoch': self.time_per_epoch,
        }


def _as_rows(data) -> np.ndarray:
    rows = np.asarray(data, dtype=float)
    if rows.ndim == 1:
        rows = rows.reshape(-1, 1)
    if rows.ndim != 2:
        raise ValueError(f"Expected a 1D or 2D array of examples, got {rows.ndim}D.")
    return rows


def evaluate(
    network: Network,
    inputs: Sequence[np.ndarray],
    targets: Sequence[np.ndarray],
    loss: Union[str, Loss] = 'mse',
) -> Dict[str, float]:
    """
    Evaluates the network on the given examples without touching its caches.

    Args:
        network: Network to evaluate.
        inputs: Examples, one row per example.
        targets: Expected outputs, one row per example.
        loss: Loss instance or registry name.

    Returns:
        A dictionary with 'loss' (mean per-example loss) and 'accuracy'. Accuracy
        compares argmax indices for multi-output networks and thresholds at 0.5
        for single-output networks.
    """
    loss_fn = get_loss(loss) if isinstance(loss, str) else loss
    X = _as_rows(inputs)
    y = _as_rows(targets)
    if X.shape[0] != y.shape[0]:
        raise ValueError("Number of samples in inputs and targets must match.")
    if X.shape[0] == 0:
        return {'loss': 0.0, 'accuracy': 0.0}

    predictions = np.array([network.predict(x) for x in X])
    mean_loss = float(np.mean([loss_fn.total(p, t) for p, t in zip(predictions, y)]))

    if predictions.shape[1] > 1:
        accuracy = np.mean(np.argmax(predictions, axis=1) == np.argmax(y, axis=1))
    else:
        accuracy = np.mean((predictions >= 0.5).astype(int) == y.astype(int))

    return {'loss': mean_loss, 'accuracy': float(accuracy)}


def fit(
    network: Network,
    optimizer: SGD,
    inputs: Sequence[np.ndarray],
    targets: Sequence[np.ndarray],
    epochs: int = 100,
    batch_size: int = 32,
    shuffle: bool = True,
    validation_data: Optional[Tuple[Sequence[np.ndarray], Sequence[np.ndarray]]] = None,
    lr_decay: float = 1.0,
    log_every: int = 10,
    rng: Optional[np.random.Generator] = None,
) -> TrainingHistory:
    """
    Trains the network with mini-batch gradient descent.

    Args:
        network: Network to train in place.
        optimizer: Optimizer applying each mini-batch update.
        inputs: Training examples (num_samples, input_dim).
        targets: Training targets (num_samples, output_dim).
        epochs: Number of passes over the training data.
        batch_size: Mini-batch size; clipped to the number of samples.
        shuffle: Whether to reshuffle the examples each epoch.
        validation_data: Optional (inputs, targets) evaluated after every epoch.
        lr_decay: Factor applied to `optimizer.learning_rate` after each epoch.
        log_every: Log progress every `log_every` epochs.
        rng: Random generator used for shuffling.

    Returns:
        The TrainingHistory of the run.
    """
    X = _as_rows(inputs)
    y = _as_rows(targets)
    num_samples = X.shape[0]
    if y.shape[0] != num_samples:
        raise ValueError("Number of samples in inputs and targets must match.")
    if not 0.0 < lr_decay <= 1.0:
        raise ValueError(f"lr_decay must be in (0, 1], got {lr_decay}")

    history = TrainingHistory()
    if num_samples == 0:
        logging.warning("fit called without training examples; nothing to do.")
        return history

    if batch_size <= 0 or batch_size > num_samples:
        logging.warning(f"Batch size ({batch_size}) is out of range. Setting batch size to {num_samples}.")
        batch_size = num_samples

    rng = rng if rng is not None else np.random.default_rng()
    logging.info(f"Training on {num_samples} samples, batch size {batch_size}, {epochs} epochs.")

    for epoch in range(epochs):
        epoch_start_time = time.time()
        order = rng.permutation(num_samples) if shuffle else np.arange(num_samples)

        epoch_loss = 0.0
        for start_idx in range(0, num_samples, batch_size):
            batch_idx = order[start_idx:start_idx + batch_size]
            batch_loss = optimizer.optimize_batch(network, list(X[batch_idx]), list(y[batch_idx]))
            # Weight loss by batch size for an accurate epoch average
            epoch_loss += batch_loss * len(batch_idx)
        epoch_loss /= num_samples

        val_loss = None
        if validation_data is not None:
            val_loss = evaluate(network, validation_data[0], validation_data[1], optimizer.loss)['loss']

        history.epoch.append(epoch)
        history.loss.append(epoch_loss)
        history.val_loss.append(val_loss)
        history.learning_rate.append(optimizer.learning_rate)
        history.time_per_epoch.append(time.time() - epoch_start_time)

        if log_every > 0 and (epoch % log_every == 0 or epoch == epochs - 1):
            msg = f"Epoch {epoch + 1}/{epochs} - loss: {epoch_loss:.5f}"
            if val_loss is not None:
                msg += f" - val_loss: {val_loss:.5f}"
            msg += f" - lr: {optimizer.learning_rate:.5f}"
            logging.info(msg)

        optimizer.learning_rate *= lr_decay

    logging.info("Training finished.")
    return history
