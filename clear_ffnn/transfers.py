import numpy as np
from typing import Dict, Optional, Type
import logging


class Transfer:
    """Base class for transfer functions.

    A transfer maps (weights, biases, input) to the pre-activation vector of a
    layer. Transfers may behave differently while training (`transfer_train`)
    and at inference time (`transfer_test`).
    """

    name = "transfer"

    def transfer(self, weights: np.ndarray, biases: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        """Compute the deterministic pre-activation for an already prepared input.

        Args:
            weights: Weight matrix of shape (output_size, input_size).
            biases: Bias vector of shape (output_size,).
            inputs: Input vector of shape (input_size,).

        Returns:
            Pre-activation vector of shape (output_size,).
        """
        raise NotImplementedError

    def dropout_mask(self, size: int) -> Optional[np.ndarray]:
        """Sample a training-mode input mask, or None if the transfer never masks."""
        return None

    def transfer_train(self, weights: np.ndarray, biases: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        """Training-mode transfer. Stochastic for transfers that sample a mask."""
        mask = self.dropout_mask(inputs.shape[0])
        if mask is not None:
            inputs = inputs * mask
        return self.transfer(weights, biases, inputs)

    def transfer_test(self, weights: np.ndarray, biases: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        """Inference-mode transfer. Always deterministic."""
        return self.transfer(weights, biases, inputs)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Dense(Transfer):
    """Fully connected transfer.

    Mathematical form:
        t = W . x + b
    """

    name = "dense"

    def transfer(self, weights: np.ndarray, biases: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        return np.dot(weights, inputs) + biases


class Dropout(Dense):
    """Fully connected transfer that randomly drops inputs while training.

    Training mode samples a Bernoulli(keep_rate) mask for every call and
    zeroes the dropped input entries before the affine map. Inference mode
    keeps every input and scales the weights by `keep_rate` instead, so the
    expected pre-activation matches the training one:

        train: t = W . (m * x) + b,   m_k ~ Bernoulli(keep_rate)
        test:  t = (keep_rate * W) . x + b
    """

    name = "dropout"

    def __init__(self, keep_rate: float = 0.5, rng: Optional[np.random.Generator] = None):
        """
        Args:
            keep_rate: Probability of keeping each input, in (0, 1].
            rng: Random generator used for the masks. A fresh `default_rng()`
                 is created when omitted.
        """
        if not 0.0 < keep_rate <= 1.0:
            raise ValueError(f"Dropout keep_rate must be in (0, 1], got {keep_rate}")
        self.keep_rate = float(keep_rate)
        self.rng = rng if rng is not None else np.random.default_rng()

    def dropout_mask(self, size: int) -> np.ndarray:
        return (self.rng.random(size) < self.keep_rate).astype(float)

    def transfer_test(self, weights: np.ndarray, biases: np.ndarray, inputs: np.ndarray) -> np.ndarray:
        return self.transfer(weights * self.keep_rate, biases, inputs)

    def __repr__(self) -> str:
        return f"Dropout(keep_rate={self.keep_rate})"


# Dictionary mapping transfer function names to their classes
TRANSFER_FUNCTIONS: Dict[str, Type[Transfer]] = {
    'dense': Dense,
    'dropout': Dropout,
}


def get_transfer(name: str, **kwargs) -> Transfer:
    """Factory function to get a transfer function instance by name.

    Args:
        name: Name of the transfer function (case-insensitive).
        **kwargs: Additional arguments passed to the transfer's constructor
                  (e.g., 'keep_rate' and 'rng' for Dropout).

    Returns:
        An instance of the requested Transfer class.

    Raises:
        ValueError: If the transfer function name is not recognized.
    """
    name_lower = name.lower()
    if name_lower not in TRANSFER_FUNCTIONS:
        raise ValueError(
            f"Unknown transfer function '{name}'. "
            f"Available functions: {list(TRANSFER_FUNCTIONS.keys())}"
        )
    logging.debug(f"Resolved transfer '{name}' with options {kwargs}")
    return TRANSFER_FUNCTIONS[name_lower](**kwargs)
