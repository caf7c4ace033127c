import copy
import numpy as np
from typing import Iterator, List, Optional, Sequence, Union
import logging

from .activations import Activation, Softmax
from .exceptions import ShapeError
from .layer import Layer
from .transfers import Dropout, Transfer


class Network:
    """
    A feed-forward neural network: an ordered, non-empty sequence of layers.

    The network owns its layers. `predict` is the pure inference path;
    `predict_cached` runs the training path and leaves every layer's cache
    populated for the optimizer's immediately following gradient computation.
    """

    def __init__(self, layers: Sequence[Layer]):
        """
        Args:
            layers: Layers in forward order. Each layer's input_size must equal the
                    previous layer's output_size.

        Raises:
            ShapeError: If `layers` is empty or two consecutive layers do not chain.
        """
        layers = list(layers)
        if not layers:
            raise ShapeError("Network must have at least one layer.")
        for i, (prev, layer) in enumerate(zip(layers, layers[1:]), start=1):
            if layer.input_size != prev.output_size:
                raise ShapeError(
                    f"Layer {i} expects {layer.input_size} inputs but layer {i - 1} "
                    f"produces {prev.output_size} outputs."
                )
        self.layers: List[Layer] = layers

        logging.info(f"Created neural network with architecture: {self.shape()}")
        logging.info(f"Layer activations: {[l.activation_fn.__class__.__name__ for l in self.layers]}")

    @classmethod
    def from_sizes(
        cls,
        layer_sizes: Sequence[int],
        activations: Optional[Sequence[Union[str, Activation]]] = None,
        transfers: Optional[Sequence[Union[str, Transfer]]] = None,
        weight_init: str = 'uniform',
        rng: Optional[np.random.Generator] = None,
    ) -> 'Network':
        """
        Builds a network from its dimension vector.

        Args:
            layer_sizes: Sizes starting with the input dimension and ending with the
                         output dimension. Example: [784, 128, 10].
            activations: One activation (name or instance) per layer. Defaults to
                         'linear' everywhere.
            transfers: One transfer (name or instance) per layer. Defaults to dense.
            weight_init: Initialization strategy passed to every layer.
            rng: Random generator shared by all layers for initialization.
        """
        if len(layer_sizes) < 2:
            raise ShapeError("Network must have at least an input and an output layer size.")

        num_layers = len(layer_sizes) - 1
        if activations is None:
            activations = ['linear'] * num_layers
        elif len(activations) != num_layers:
            raise ValueError(f"Number of activation functions ({len(activations)}) must match "
                             f"number of layers ({num_layers}).")
        if transfers is None:
            transfers = ['dense'] * num_layers
        elif len(transfers) != num_layers:
            raise ValueError(f"Number of transfer functions ({len(transfers)}) must match "
                             f"number of layers ({num_layers}).")

        rng = rng if rng is not None else np.random.default_rng()
        layers = [
            Layer(
                output_size = layer_sizes[i + 1],
                input_size  = layer_sizes[i],
                transfer    = transfers[i],
                activation  = activations[i],
                weight_init = weight_init,
                rng         = rng,
                id          = i,
            )
            for i in range(num_layers)
        ]
        return cls(layers)

    def predict(self, inputs: np.ndarray) -> np.ndarray:
        """
        Folds the input through every layer's inference forward pass.

        Args:
            inputs: Input vector of shape (input_size,).

        Returns:
            Output vector of shape (output_size,).
        """
        current_output = np.asarray(inputs, dtype=float)
        for layer in self.layers:
            current_output = layer.forward(current_output)
        return current_output

    def predict_cached(self, inputs: np.ndarray) -> np.ndarray:
        """
        Same fold as `predict`, but through `forward_cached`, so every layer keeps
        its input, pre-activation and activation for the backward pass.
        """
        current_output = np.asarray(inputs, dtype=float)
        for i, layer in enumerate(self.layers):
            current_output = layer.forward_cached(current_output)
            logging.debug(f"Cached forward pass - Layer {i} output shape: {current_output.shape}")
        return current_output

    def shape(self) -> List[int]:
        """Full dimension vector [in_0, out_0, out_1, ...]."""
        return [self.layers[0].input_size] + [layer.output_size for layer in self.layers]

    @property
    def input_size(self) -> int:
        return self.layers[0].input_size

    @property
    def output_size(self) -> int:
        return self.layers[-1].output_size

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    @property
    def is_cached(self) -> bool:
        """True when every layer holds a valid forward cache."""
        return all(layer.is_cached for layer in self.layers)

    def clear_cache(self):
        """Invalidates every layer's forward cache."""
        for layer in self.layers:
            layer.clear_cache()

    # --- Parameter accessors ---

    @staticmethod
    def _read_only(array: np.ndarray) -> np.ndarray:
        view = array.view()
        view.flags.writeable = False
        return view

    def get_weights(self) -> List[np.ndarray]:
        """Read-only views of each layer's weight matrix, in layer order."""
        return [self._read_only(layer.weights) for layer in self.layers]

    def get_biases(self) -> List[np.ndarray]:
        """Read-only views of each layer's bias vector, in layer order."""
        return [self._read_only(layer.biases) for layer in self.layers]

    def get_weights_mut(self) -> List[np.ndarray]:
        """
        Each layer's weight matrix itself; in-place edits change the network.

        Handing out a write handle counts as a parameter update, so the
        forward caches are invalidated.
        """
        self.clear_cache()
        return [layer.weights for layer in self.layers]

    def get_biases_mut(self) -> List[np.ndarray]:
        """Each layer's bias vector itself. Invalidates the forward caches like `get_weights_mut`."""
        self.clear_cache()
        return [layer.biases for layer in self.layers]

    def set_weights(self, weights: Sequence[np.ndarray]):
        """Replaces every layer's weight matrix (copied, shape-checked)."""
        if len(weights) != len(self.layers):
            raise ShapeError(f"Expected {len(self.layers)} weight matrices, got {len(weights)}.")
        for i, (layer, w) in enumerate(zip(self.layers, weights)):
            w = np.asarray(w, dtype=float)
            if w.shape != layer.weights.shape:
                raise ShapeError(f"Layer {i}: weight shape {w.shape} does not match {layer.weights.shape}.")
        for layer, w in zip(self.layers, weights):
            layer.weights = np.array(w, dtype=float)
        self.clear_cache()

    def set_biases(self, biases: Sequence[np.ndarray]):
        """Replaces every layer's bias vector (copied, shape-checked)."""
        if len(biases) != len(self.layers):
            raise ShapeError(f"Expected {len(self.layers)} bias vectors, got {len(biases)}.")
        for i, (layer, b) in enumerate(zip(self.layers, biases)):
            b = np.asarray(b, dtype=float)
            if b.shape != layer.biases.shape:
                raise ShapeError(f"Layer {i}: bias shape {b.shape} does not match {layer.biases.shape}.")
        for layer, b in zip(self.layers, biases):
            layer.biases = np.array(b, dtype=float)
        self.clear_cache()

    def copy(self, rng: Optional[np.random.Generator] = None) -> 'Network':
        """
        Deep copy: parameters, activations and transfers are all duplicated.

        Dropout transfers carry their random generator along, so without `rng`
        the clone draws the same masks as the original from here on. Passing
        `rng` gives every dropout transfer of the clone that generator instead.
        """
        clone = copy.deepcopy(self)
        clone.clear_cache()
        if rng is not None:
            for layer in clone.layers:
                if isinstance(layer.transfer_fn, Dropout):
                    layer.transfer_fn.rng = rng
        return clone

    def has_softmax_output(self) -> bool:
        return isinstance(self.layers[-1].activation_fn, Softmax)

    def summary(self) -> str:
        """
        Generates a text summary of the network architecture and parameters.

        Returns:
            A string containing the network summary.
        """
        rule = "=" * 50
        sections = [f"Network {self.shape()}", rule]
        sections += [layer.summary() for layer in self.layers]
        total_params = sum(layer.num_parameters for layer in self.layers)
        sections += [rule, f"Total Parameters: {total_params:,}"]
        return "\n".join(sections) + "\n"

    def __repr__(self):
        return f"Network(shape={self.shape()}, layers={len(self.layers)})"
