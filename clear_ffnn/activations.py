import numpy as np
from typing import Dict, Type
import logging


class Activation:
    """Base class for all activation functions.

    Activations are stateless, so a single instance can be shared by any number
    of layers. Every method receives the layer's *pre-activation* vector
    (the transfer output, often denoted 'z').
    """

    name = "activation"

    def activate(self, x: np.ndarray) -> np.ndarray:
        """Compute the activation function value.

        Args:
            x: Pre-activation vector.

        Returns:
            Activated output, same shape as x.
        """
        raise NotImplementedError

    def derive(self, x: np.ndarray) -> np.ndarray:
        """Compute the elementwise derivative of the activation with respect to 'x'.

        Args:
            x: Pre-activation vector where the derivative is evaluated.

        Returns:
            Derivative of the activation evaluated at x.
        """
        raise NotImplementedError

    def chain(self, x: np.ndarray, grad: np.ndarray) -> np.ndarray:
        """Backpropagate `grad` (dL/da) through the activation, returning dL/dz.

        Args:
            x: Pre-activation vector cached during the forward pass.
            grad: Gradient of the loss with respect to this activation's output.

        Returns:
            Gradient of the loss with respect to x.
        """
        return grad * self.derive(x)

    def __eq__(self, other) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Linear(Activation):
    """Linear activation function (identity).

    Mathematical form:
        activate: f(x) = x
        derive: f'(x) = 1
    """

    name = "linear"

    def activate(self, x: np.ndarray) -> np.ndarray:
        return np.asarray(x, dtype=float)

    def derive(self, x: np.ndarray) -> np.ndarray:
        return np.ones_like(x, dtype=float)


class ReLU(Activation):
    """Rectified Linear Unit activation function.

    Mathematical form:
        activate: f(x) = max(0, x)
        derive: f'(x) = 1 if x > 0 else 0
    """

    name = "relu"

    def activate(self, x: np.ndarray) -> np.ndarray:
        return np.maximum(0.0, x)

    def derive(self, x: np.ndarray) -> np.ndarray:
        return np.where(x > 0, 1.0, 0.0)


class LeakyReLU(Activation):
    """Leaky ReLU with a fixed negative slope of 0.01.

    Mathematical form:
        activate: f(x) = x if x > 0 else 0.01x
        derive: f'(x) = 1 if x > 0 else 0.01
    """

    name = "leaky_relu"
    negative_slope = 0.01

    def activate(self, x: np.ndarray) -> np.ndarray:
        return np.where(x > 0, x, self.negative_slope * x)

    def derive(self, x: np.ndarray) -> np.ndarray:
        return np.where(x > 0, 1.0, self.negative_slope)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic function with the input clipped to avoid overflow in exp(-x)."""
    clipped_x = np.clip(x, -500, 500)
    return 1.0 / (1.0 + np.exp(-clipped_x))


class Sigmoid(Activation):
    """Sigmoid activation function.

    Mathematical form:
        activate: f(x) = 1 / (1 + e^-x)
        derive: f'(x) = f(x) * (1 - f(x))

    The derivative recomputes sigmoid from the pre-activation value; it must
    never be fed an already-activated vector.
    """

    name = "sigmoid"

    def activate(self, x: np.ndarray) -> np.ndarray:
        return sigmoid(x)

    def derive(self, x: np.ndarray) -> np.ndarray:
        sig = sigmoid(x)
        return sig * (1.0 - sig)


def softmax(x: np.ndarray) -> np.ndarray:
    """Compute softmax of a vector safely using the max subtraction trick."""
    x = np.asarray(x, dtype=float)
    exp_x = np.exp(x - np.max(x))
    return exp_x / np.sum(exp_x)


def log_softmax(x: np.ndarray) -> np.ndarray:
    """Log of softmax via log-sum-exp; never evaluates ln(0)."""
    x = np.asarray(x, dtype=float)
    shifted = x - np.max(x)
    return shifted - np.log(np.sum(np.exp(shifted)))


class Softmax(Activation):
    """Softmax activation function.

    Normalizes outputs to a probability distribution.
    Mathematical form:
        activate: f(x_i) = e^(x_i - max x) / Σ e^(x_j - max x)

    The derivative of softmax is a Jacobian, not an elementwise vector.
    `derive` returns its diagonal s(1 - s); `chain` applies the full Jacobian,
    which is what the optimizer uses. Do not use Softmax as an output layer
    together with the CCE loss, which already embeds a softmax.
    """

    name = "softmax"

    def activate(self, x: np.ndarray) -> np.ndarray:
        return softmax(x)

    def derive(self, x: np.ndarray) -> np.ndarray:
        s = softmax(x)
        return s * (1.0 - s)

    def chain(self, x: np.ndarray, grad: np.ndarray) -> np.ndarray:
        # J = diag(s) - s s^T, and J is symmetric
        s = softmax(x)
        return s * (grad - np.dot(grad, s))


class Softplus(Activation):
    """Softplus activation function.

    Mathematical form:
        activate: f(x) = ln(1 + e^x)
        derive: f'(x) = sigmoid(x)
    """

    name = "softplus"

    def activate(self, x: np.ndarray) -> np.ndarray:
        return np.logaddexp(0.0, x)

    def derive(self, x: np.ndarray) -> np.ndarray:
        return sigmoid(x)


class Tanh(Activation):
    """Hyperbolic tangent activation function.

    Mathematical form:
        activate: f(x) = tanh(x) = (e^x - e^-x)/(e^x + e^-x)
        derive: f'(x) = 1 - tanh^2(x)
    """

    name = "tanh"

    def activate(self, x: np.ndarray) -> np.ndarray:
        return np.tanh(x)

    def derive(self, x: np.ndarray) -> np.ndarray:
        return 1.0 - np.tanh(x) ** 2


# Dictionary mapping activation function names to their classes
ACTIVATION_FUNCTIONS: Dict[str, Type[Activation]] = {
    'linear': Linear,
    'relu': ReLU,
    'leaky_relu': LeakyReLU,
    'sigmoid': Sigmoid,
    'softmax': Softmax,
    'softplus': Softplus,
    'tanh': Tanh,
}


def get_activation(name: str) -> Activation:
    """Factory function to get an activation function instance by name.

    Args:
        name: Name of the activation function (case-insensitive).

    Returns:
        An instance of the requested Activation class.

    Raises:
        ValueError: If the activation function name is not recognized.
    """
    name_lower = name.lower()
    if name_lower not in ACTIVATION_FUNCTIONS:
        raise ValueError(
            f"Unknown activation function '{name}'. "
            f"Available functions: {list(ACTIVATION_FUNCTIONS.keys())}"
        )
    logging.debug(f"Resolved activation '{name}' to {ACTIVATION_FUNCTIONS[name_lower].__name__}")
    return ACTIVATION_FUNCTIONS[name_lower]()
