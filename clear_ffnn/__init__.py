"""
clear_ffnn - a small NumPy feed-forward neural network library.

Layers cache their forward pass; the SGD optimizer derives per-layer gradients
from those caches by backpropagation and updates the weights in place.
"""

from .activations import (
    ACTIVATION_FUNCTIONS,
    Activation,
    LeakyReLU,
    Linear,
    ReLU,
    Sigmoid,
    Softmax,
    Softplus,
    Tanh,
    get_activation,
)
from .exceptions import ClearFFNNError, ShapeError, StaleCacheError
from .layer import Layer
from .losses import CCE, LOSS_FUNCTIONS, MSE, SSE, Loss, get_loss
from .network import Network
from .optimizers import SGD, Optimizer
from .training import TrainingHistory, evaluate, fit
from .transfers import TRANSFER_FUNCTIONS, Dense, Dropout, Transfer, get_transfer

__version__ = "0.1.0"
