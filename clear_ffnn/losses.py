import numpy as np
from typing import Callable, Dict, Type

from .activations import log_softmax, softmax

# --- Loss Functions ---

LossFunctionType = Callable[[np.ndarray, np.ndarray], np.ndarray]


def _check_shapes(name: str, prediction: np.ndarray, target: np.ndarray):
    if prediction.shape != target.shape:
        raise ValueError(f"{name}: prediction shape {prediction.shape} must match target shape {target.shape}")


def sse_loss(prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Elementwise Sum-Squared-Error loss.

    Loss = (p - t)^2, summed by `Loss.total`.
    """
    return (prediction - target) ** 2


def sse_derivative(prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Gradient (dL/dp) = 2 * (p - t)"""
    return 2.0 * (prediction - target)


def mse_loss(prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Elementwise Mean-Squared-Error loss.

    Each element is scaled by 1/n so that summing the vector yields the mean:
    Loss = (1/n) * Σ(p_i - t_i)^2
    """
    return (prediction - target) ** 2 / prediction.shape[0]


def mse_derivative(prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Gradient (dL/dp) = (p - t) / n"""
    return (prediction - target) / prediction.shape[0]


def cce_loss(prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Categorical Cross-Entropy with the softmax embedded.

    `prediction` holds raw scores (logits), `target` is one-hot encoded.
    Loss = -log(softmax(p)) * t, computed with log-sum-exp so log(0) never occurs.
    """
    return -log_softmax(prediction) * target


def cce_derivative(prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Gradient of the fused softmax + cross-entropy w.r.t. the raw scores:
    dL/dp = softmax(p) - t
    """
    return softmax(prediction) - target


class Loss:
    """
    Base class pairing a loss with its derivative w.r.t. the prediction.

    Subclasses set `loss_fn` and `derivative_fn` to plain functions of
    (prediction, target).
    """

    name = "loss"
    loss_fn: LossFunctionType
    derivative_fn: LossFunctionType

    def loss(self, prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
        """Elementwise loss vector, same shape as the prediction."""
        prediction = np.asarray(prediction, dtype=float)
        target = np.asarray(target, dtype=float)
        _check_shapes(self.__class__.__name__, prediction, target)
        return self.loss_fn(prediction, target)

    def derivative(self, prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
        """Gradient of the loss w.r.t. the prediction."""
        prediction = np.asarray(prediction, dtype=float)
        target = np.asarray(target, dtype=float)
        _check_shapes(self.__class__.__name__, prediction, target)
        return self.derivative_fn(prediction, target)

    def total(self, prediction: np.ndarray, target: np.ndarray) -> float:
        """Scalar loss: the sum of the elementwise loss vector."""
        return float(np.sum(self.loss(prediction, target)))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SSE(Loss):
    """Sum-Squared-Error."""

    name = "sse"
    loss_fn = staticmethod(sse_loss)
    derivative_fn = staticmethod(sse_derivative)


class MSE(Loss):
    """Mean-Squared-Error."""

    name = "mse"
    loss_fn = staticmethod(mse_loss)
    derivative_fn = staticmethod(mse_derivative)


class CCE(Loss):
    """Categorical Cross-Entropy over raw scores (softmax applied internally).

    Pair it with a linear output layer, never with a Softmax activation.
    """

    name = "cce"
    loss_fn = staticmethod(cce_loss)
    derivative_fn = staticmethod(cce_derivative)


# Dictionary mapping loss names to loss classes
LOSS_FUNCTIONS: Dict[str, Type[Loss]] = {
    "sse": SSE,
    "mse": MSE,
    "cce": CCE,
    "cross_entropy": CCE,
}


def get_loss(name: str) -> Loss:
    """Factory function to get a loss instance by name.

    Raises:
        ValueError: If the loss name is not recognized.
    """
    name_lower = name.lower()
    if name_lower not in LOSS_FUNCTIONS:
        raise ValueError(f"Unsupported loss '{name}'. "
                         f"Valid options: {list(LOSS_FUNCTIONS.keys())}")
    return LOSS_FUNCTIONS[name_lower]()
