import numpy as np
from typing import Optional, Tuple, Union
import logging

from .activations import Activation, get_activation
from .exceptions import ShapeError
from .transfers import Transfer, get_transfer

# Half-width of the default uniform initialization range
UNIFORM_INIT_LIMIT = 0.01


class Layer:
    """
    Represents a single fully connected layer operating on one example at a time.

    A layer computes a pre-activation vector with its Transfer (t = W . x + b
    for dense layers) and applies its Activation elementwise (a = f(t)).

    Key Attributes:
        weights (np.ndarray): Weight matrix of shape (output_size, input_size). Row j
                              holds the weights feeding output unit j.
        biases (np.ndarray): Bias vector of shape (output_size,).
        transfer_fn (Transfer): Maps (weights, biases, input) to the pre-activation.
        activation_fn (Activation): Applied to the pre-activation.
        last_input (np.ndarray): Input received by the last cached forward pass.
        last_transfer (np.ndarray): Pre-activation computed by the last cached forward pass.
        last_activation (np.ndarray): Output of the last cached forward pass.
        last_mask (np.ndarray): Dropout mask applied to `last_input`, or None when
                                the transfer does not mask.

    The four cache slots are None until `forward_cached` runs, and are always
    written and cleared together.
    """

    def __init__(
        self,
        output_size: int,
        input_size: int,
        transfer: Union[str, Transfer, None] = None,
        activation: Union[str, Activation, None] = None,
        weight_init: str = 'uniform',
        initial_weights: Optional[np.ndarray] = None,  # Expected shape (output_size, input_size)
        initial_biases: Optional[np.ndarray] = None,   # Expected shape (output_size,)
        rng: Optional[np.random.Generator] = None,
        id: int = 0,
    ):
        """
        Initializes the layer.

        Args:
            output_size: Number of output units.
            input_size: Number of input features (size of the previous layer).
            transfer: Transfer identifier ('dense', 'dropout') or a Transfer instance.
                      Defaults to dense.
            activation: Activation identifier (e.g., 'relu', 'sigmoid') or an Activation
                        instance. Defaults to linear.
            weight_init: 'uniform' draws weights and biases from U(-0.01, 0.01);
                         'xavier' draws weights from the Glorot uniform range and zeroes biases.
            initial_weights: Optional pre-defined weight matrix. Overrides `weight_init`.
            initial_biases: Optional pre-defined bias vector. Overrides default bias initialization.
            rng: Random generator used for initialization. A fresh `default_rng()` is used
                 when omitted.
            id: An identifier for the layer (for logging/debugging).
        """
        if output_size <= 0 or input_size <= 0:
            raise ShapeError(f"Layer {id}: sizes must be positive, got output_size={output_size}, input_size={input_size}")

        self.input_size = input_size
        self.output_size = output_size
        self.id = id

        if isinstance(activation, str):
            self.activation_fn = get_activation(activation)
        elif isinstance(activation, Activation):
            self.activation_fn = activation
        elif activation is None:
            self.activation_fn = get_activation('linear')
        else:
            raise TypeError(f"Layer {id}: invalid activation type '{type(activation).__name__}'")

        if isinstance(transfer, str):
            self.transfer_fn = get_transfer(transfer)
        elif isinstance(transfer, Transfer):
            self.transfer_fn = transfer
        elif transfer is None:
            self.transfer_fn = get_transfer('dense')
        else:
            raise TypeError(f"Layer {id}: invalid transfer type '{type(transfer).__name__}'")

        rng = rng if rng is not None else np.random.default_rng()

        if initial_weights is not None:
            initial_weights = np.asarray(initial_weights, dtype=float)
            if initial_weights.shape != (output_size, input_size):
                raise ShapeError(
                    f"Layer {id}: Initial weights shape {initial_weights.shape} "
                    f"does not match expected shape ({output_size}, {input_size})"
                )
            self.weights = initial_weights.copy()
            logging.debug(f"Layer #{self.id}: Using provided initial weights.")
        elif weight_init == 'uniform':
            self.weights = rng.uniform(-UNIFORM_INIT_LIMIT, UNIFORM_INIT_LIMIT, (output_size, input_size))
            logging.debug(f"Layer #{self.id}: Initializing weights with small uniform ({UNIFORM_INIT_LIMIT}).")
        elif weight_init == 'xavier':
            # Xavier/Glorot uniform limits: sqrt(6 / (fan_in + fan_out))
            limit = np.sqrt(6.0 / (input_size + output_size))
            self.weights = rng.uniform(-limit, limit, (output_size, input_size))
            logging.debug(f"Layer #{self.id}: Initializing weights with Xavier uniform ({limit:.4f}).")
        else:
            raise ValueError(f"Layer {id}: Unknown weight_init '{weight_init}', expected 'uniform' or 'xavier'")

        if initial_biases is not None:
            initial_biases = np.asarray(initial_biases, dtype=float)
            if initial_biases.shape != (output_size,):
                raise ShapeError(
                    f"Layer {id}: Initial biases shape {initial_biases.shape} "
                    f"does not match expected shape ({output_size},)"
                )
            self.biases = initial_biases.copy()
        elif weight_init == 'uniform' and initial_weights is None:
            self.biases = rng.uniform(-UNIFORM_INIT_LIMIT, UNIFORM_INIT_LIMIT, output_size)
        else:
            self.biases = np.zeros(output_size, dtype=float)

        # Placeholders for values computed during a cached forward pass
        self.last_input      = None  # Shape: (input_size,)
        self.last_transfer   = None  # Shape: (output_size,)
        self.last_activation = None  # Shape: (output_size,)
        self.last_mask       = None  # Shape: (input_size,) - dropout layers only

        logging.debug(
            f"Layer #{self.id} created: input_size={input_size}, "
            f"output_size={output_size}, transfer={self.transfer_fn!r}, "
            f"activation={self.activation_fn.__class__.__name__}, weight_shape={self.weights.shape}"
        )

    def _check_input(self, inputs) -> np.ndarray:
        inputs = np.asarray(inputs, dtype=float)
        if inputs.ndim != 1:
            raise ShapeError(f"Layer {self.id}: Expected a 1D input vector, got shape {inputs.shape}")
        if inputs.shape[0] != self.input_size:
            raise ShapeError(f"Layer {self.id}: Expected {self.input_size} inputs, got {inputs.shape[0]}")
        return inputs

    def forward(self, inputs: np.ndarray) -> np.ndarray:
        """
        Inference forward pass: A = activation_fn(transfer_test(W, b, X)).

        Nothing is cached, so this never disturbs a pending gradient computation.

        Args:
            inputs: Input vector of shape (input_size,).

        Returns:
            Output activations of shape (output_size,).

        Raises:
            ShapeError: If the input shape is incorrect.
        """
        inputs = self._check_input(inputs)
        z = self.transfer_fn.transfer_test(self.weights, self.biases, inputs)
        return self.activation_fn.activate(z)

    def forward_cached(self, inputs: np.ndarray) -> np.ndarray:
        """
        Training forward pass that stores every intermediate value for backpropagation.

        The dropout mask (if any) is sampled once here and kept, so the gradient
        computation sees exactly the inputs that produced this output.

        Args:
            inputs: Input vector of shape (input_size,).

        Returns:
            Output activations of shape (output_size,).
        """
        inputs = self._check_input(inputs)
        mask = self.transfer_fn.dropout_mask(self.input_size)
        effective = inputs if mask is None else inputs * mask

        z = self.transfer_fn.transfer(self.weights, self.biases, effective)
        a = self.activation_fn.activate(z)

        self.last_input = inputs.copy()
        self.last_transfer = z
        self.last_activation = a
        self.last_mask = mask
        return a.copy()

    @property
    def is_cached(self) -> bool:
        """True when a cached forward pass has run since the last parameter update."""
        return self.last_input is not None

    @property
    def effective_input(self) -> Optional[np.ndarray]:
        """The cached input as seen by the transfer (after the dropout mask)."""
        if self.last_input is None or self.last_mask is None:
            return self.last_input
        return self.last_input * self.last_mask

    def clear_cache(self):
        """Invalidates the forward cache."""
        self.last_input = None
        self.last_transfer = None
        self.last_activation = None
        self.last_mask = None

    def get_weights(self) -> np.ndarray:
        """Returns a copy of the current weight matrix."""
        return self.weights.copy()

    def get_biases(self) -> np.ndarray:
        """Returns a copy of the current bias vector."""
        return self.biases.copy()

    @property
    def num_parameters(self) -> int:
        return self.weights.size + self.biases.size

    def summary(self) -> str:
        """Returns a string summary of the layer's configuration."""
        return (
            f"Layer Summary (id={self.id}):\n"
            f"  Transfer: {self.transfer_fn!r}\n"
            f"  Input size: {self.input_size}\n"
            f"  Output size: {self.output_size}\n"
            f"  Activation: {self.activation_fn.__class__.__name__}\n"
            f"  Weights shape: {self.weights.shape}\n"
            f"  Biases shape: {self.biases.shape}\n"
            f"  Parameters: {self.num_parameters:,} parameters\n"
        )

    def __repr__(self):
        return (f"Layer(id={self.id}, output_size={self.output_size}, "
                f"input_size={self.input_size}, "
                f"transfer={self.transfer_fn!r}, "
                f"activation={self.activation_fn.__class__.__name__})")
