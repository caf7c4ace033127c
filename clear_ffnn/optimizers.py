"""
Gradient descent optimizers.

The optimizer owns a Loss and a learning rate, derives per-layer gradients from
a network's forward caches by reverse-order chain-rule propagation, and applies
`param <- param - learning_rate * gradient` in place.

A training step moves the network through two states:

    stale  --predict_cached-->  cached  --apply_gradients-->  stale

Gradients can only be derived in the cached state. `optimize_once` and
`optimize_batch` run their own cached forward passes, so callers using them
can never read a stale cache.
"""

import numpy as np
from typing import List, Sequence, Tuple, Union
import logging

from .exceptions import ShapeError, StaleCacheError
from .losses import CCE, Loss, get_loss
from .network import Network

Gradients = Tuple[List[np.ndarray], List[np.ndarray]]

# Gradient norms above this are reported before the update is applied
LARGE_GRADIENT_NORM = 1e6


class Optimizer:
    """Base class for optimizers."""

    def __init__(self, learning_rate: float, loss: Union[str, Loss]):
        if learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {learning_rate}")
        self.learning_rate = float(learning_rate)
        self.loss = get_loss(loss) if isinstance(loss, str) else loss

    def optimize_once(self, network: Network, inputs: np.ndarray, target: np.ndarray) -> float:
        """Trains on a single example."""
        raise NotImplementedError

    def optimize_batch(self, network: Network, batch_inputs: Sequence[np.ndarray],
                       batch_targets: Sequence[np.ndarray]) -> float:
        """Trains on a batch of examples."""
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__class__.__name__}(learning_rate={self.learning_rate}, loss={self.loss!r})"


class SGD(Optimizer):
    """
    Stochastic gradient descent without momentum, weight decay or adaptive rates.

    Args:
        learning_rate: Step size. External training loops may change
                       `optimizer.learning_rate` between epochs.
        loss: Loss instance or registry name ('sse', 'mse', 'cce').
    """

    def _check_output_pairing(self, network: Network):
        if isinstance(self.loss, CCE) and network.has_softmax_output():
            logging.warning("CCE already applies softmax; the network's Softmax output layer applies it twice.")

    def gradients(self, network: Network, prediction: np.ndarray, target: np.ndarray) -> Gradients:
        """
        Derives weight and bias gradients for every layer from its forward cache.

        Must follow a `predict_cached` call on the input that produced
        `prediction`, with no parameter update in between.

        Args:
            network: Network whose layers hold valid caches.
            prediction: Output returned by that `predict_cached` call.
            target: Expected output.

        Returns:
            (weight_gradients, bias_gradients), both aligned with network layer order.

        Raises:
            StaleCacheError: If any layer has no valid cache.
        """
        for i, layer in enumerate(network.layers):
            if not layer.is_cached:
                raise StaleCacheError(
                    f"Layer {i} has no forward cache; call predict_cached() before computing gradients."
                )

        weight_gradients: List[np.ndarray] = []
        bias_gradients: List[np.ndarray] = []

        # dL/da of the last layer comes straight from the loss
        dl_da = self.loss.derivative(prediction, target)

        for layer in reversed(network.layers):
            # dL/dt = dL/da * da/dt, evaluated at this call's pre-activation
            delta = layer.activation_fn.chain(layer.last_transfer, dl_da)

            # dt/db = 1
            bias_gradients.insert(0, delta)

            # dt_j/dW_jk = x_k
            weight_gradients.insert(0, np.outer(delta, layer.effective_input))

            # Each previous unit feeds every unit of this layer, so its
            # contributions are summed over the rows of W
            dl_da = np.dot(delta, layer.weights)
            if layer.last_mask is not None:
                dl_da = dl_da * layer.last_mask

        return weight_gradients, bias_gradients

    def apply_gradients(self, network: Network, weight_gradients: Sequence[np.ndarray],
                        bias_gradients: Sequence[np.ndarray]):
        """
        Applies W <- W - lr * dW and b <- b - lr * db to every layer in place,
        then invalidates the forward caches.
        """
        if len(weight_gradients) != len(network) or len(bias_gradients) != len(network):
            raise ShapeError(
                f"Expected gradients for {len(network)} layers, got "
                f"{len(weight_gradients)} weight and {len(bias_gradients)} bias gradients."
            )

        for i, (layer, dw, db) in enumerate(zip(network.layers, weight_gradients, bias_gradients)):
            grad_norm = np.linalg.norm(dw)
            if grad_norm > LARGE_GRADIENT_NORM:
                logging.warning(f"Layer {i}: Large gradient norm detected ({grad_norm:.2e}) before update.")
            layer.weights -= self.learning_rate * dw
            layer.biases -= self.learning_rate * db

        network.clear_cache()

    def optimize_once(self, network: Network, inputs: np.ndarray, target: np.ndarray) -> float:
        """
        One forward-backward-update step on a single example.

        Returns:
            The example's loss before the update.
        """
        self._check_output_pairing(network)
        prediction = network.predict_cached(inputs)
        weight_gradients, bias_gradients = self.gradients(network, prediction, target)
        loss = self.loss.total(prediction, target)
        self.apply_gradients(network, weight_gradients, bias_gradients)
        return loss

    def batch_gradients(self, network: Network, batch_inputs: Sequence[np.ndarray],
                        batch_targets: Sequence[np.ndarray]) -> Tuple[List[np.ndarray], List[np.ndarray], float]:
        """
        Per-example gradients averaged elementwise over the batch.

        Gradients are summed in batch order and divided once by the batch size.

        Returns:
            (avg_weight_gradients, avg_bias_gradients, mean_loss). For an empty batch
            the gradient lists are zero arrays and the loss is 0.0.

        Raises:
            ValueError: If inputs and targets differ in length.
        """
        if len(batch_inputs) != len(batch_targets):
            raise ValueError(
                f"Number of inputs ({len(batch_inputs)}) and targets ({len(batch_targets)}) must match."
            )

        weight_sums = [np.zeros_like(layer.weights) for layer in network.layers]
        bias_sums = [np.zeros_like(layer.biases) for layer in network.layers]
        batch_size = len(batch_inputs)
        if batch_size == 0:
            return weight_sums, bias_sums, 0.0

        total_loss = 0.0
        try:
            for inputs, target in zip(batch_inputs, batch_targets):
                prediction = network.predict_cached(inputs)
                weight_gradients, bias_gradients = self.gradients(network, prediction, target)
                total_loss += self.loss.total(prediction, target)
                for acc, grad in zip(weight_sums, weight_gradients):
                    acc += grad
                for acc, grad in zip(bias_sums, bias_gradients):
                    acc += grad
        finally:
            # A failed example must not leave earlier caches behind
            network.clear_cache()

        return (
            [w / batch_size for w in weight_sums],
            [b / batch_size for b in bias_sums],
            total_loss / batch_size,
        )

    def optimize_batch(self, network: Network, batch_inputs: Sequence[np.ndarray],
                       batch_targets: Sequence[np.ndarray]) -> float:
        """
        Averages the batch's gradients and applies a single update.

        An empty batch leaves the network untouched.

        Returns:
            Mean example loss over the batch, measured before the update.
        """
        if len(batch_inputs) == 0 and len(batch_targets) == 0:
            logging.debug("optimize_batch called with an empty batch; skipping update.")
            return 0.0

        self._check_output_pairing(network)
        weight_gradients, bias_gradients, mean_loss = self.batch_gradients(network, batch_inputs, batch_targets)
        self.apply_gradients(network, weight_gradients, bias_gradients)
        return mean_loss
