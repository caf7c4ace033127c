"""Tests for the SGD gradient engine and update rule."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from clear_ffnn.exceptions import ShapeError, StaleCacheError
from clear_ffnn.layer import Layer
from clear_ffnn.losses import CCE, MSE, SSE
from clear_ffnn.network import Network
from clear_ffnn.optimizers import SGD
from clear_ffnn.training import fit
from clear_ffnn.transfers import Dropout


def _small_network(rng) -> Network:
    return Network.from_sizes([3, 4, 2], ["tanh", "sigmoid"], weight_init="xavier", rng=rng)


# ── Construction ─────────────────────────────────────────────────
class TestConstruction:

    @pytest.mark.parametrize("lr", [0.0, -0.5])
    def test_learning_rate_must_be_positive(self, lr: float) -> None:
        with pytest.raises(ValueError, match="learning_rate"):
            SGD(lr, SSE())

    def test_loss_by_name(self) -> None:
        assert isinstance(SGD(0.1, "mse").loss, MSE)


# ── Gradients ────────────────────────────────────────────────────
class TestGradients:

    def test_single_linear_layer_closed_form(self, rng) -> None:
        optimizer = SGD(0.1, SSE())
        for _ in range(5):
            layer = Layer(3, 4, rng=rng)
            network = Network([layer])
            x = rng.normal(size=4)
            target = rng.normal(size=3)

            prediction = network.predict_cached(x)
            weight_grads, bias_grads = optimizer.gradients(network, prediction, target)

            error = layer.weights @ x + layer.biases - target
            np.testing.assert_allclose(weight_grads[0], 2 * np.outer(error, x), atol=1e-5)
            np.testing.assert_allclose(bias_grads[0], 2 * error, atol=1e-5)

    def test_gradient_lists_align_with_layers(self, rng) -> None:
        network = Network.from_sizes([2, 3, 4, 5, 6], ["softplus", "relu", "sigmoid", "leaky_relu"], rng=rng)
        optimizer = SGD(0.1, MSE())
        prediction = network.predict_cached(np.array([1.0, 0.0]))
        weight_grads, bias_grads = optimizer.gradients(network, prediction, np.linspace(0, 1, 6))
        assert [g.shape for g in weight_grads] == [layer.weights.shape for layer in network]
        assert [g.shape for g in bias_grads] == [layer.biases.shape for layer in network]

    @pytest.mark.parametrize(
        "sizes,activations,loss,target",
        [
            ([3, 5, 4, 3], ["sigmoid", "tanh", "softmax"], SSE(), np.array([0.2, 0.7, 0.1])),
            ([3, 6, 4], ["softplus", "linear"], CCE(), np.array([0.0, 0.0, 1.0, 0.0])),
            ([3, 4, 2], ["tanh", "sigmoid"], SSE(), np.array([0.9, -0.3])),
            ([3, 4, 4, 2], ["leaky_relu", "softplus", "linear"], SSE(), np.array([1.5, -0.5])),
        ],
        ids=["sigmoid-tanh-softmax", "softplus-cce", "tanh-sigmoid", "leaky-softplus"],
    )
    def test_matches_finite_differences(self, rng, finite_difference, sizes, activations, loss, target) -> None:
        network = Network.from_sizes(sizes, activations, weight_init="xavier", rng=rng)
        for layer in network:
            layer.biases[:] = rng.normal(scale=0.1, size=layer.output_size)
        x = rng.normal(size=sizes[0])
        optimizer = SGD(0.1, loss)

        prediction = network.predict_cached(x)
        weight_grads, bias_grads = optimizer.gradients(network, prediction, target)
        numeric_w, numeric_b = finite_difference(network, loss, x, target)

        for analytic, numeric in zip(weight_grads, numeric_w):
            np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-8)
        for analytic, numeric in zip(bias_grads, numeric_b):
            np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-8)

    def test_mse_gradient_uses_error_over_n(self, rng) -> None:
        layer = Layer(2, 3, rng=rng)
        network = Network([layer])
        x = rng.normal(size=3)
        target = np.array([0.5, -0.5])
        prediction = network.predict_cached(x)
        weight_grads, bias_grads = SGD(0.1, MSE()).gradients(network, prediction, target)
        np.testing.assert_allclose(bias_grads[0], (prediction - target) / 2)
        np.testing.assert_allclose(weight_grads[0], np.outer((prediction - target) / 2, x))

    def test_dropout_gradients_use_the_cached_mask(self, rng) -> None:
        dropout = Dropout(0.5, rng=np.random.default_rng(11))
        first = Layer(4, 16, transfer=dropout, activation="tanh", weight_init="xavier", rng=rng)
        second = Layer(2, 4, activation="linear", weight_init="xavier", rng=rng)
        network = Network([first, second])
        x = rng.normal(size=16)
        target = np.array([0.3, -0.3])
        optimizer = SGD(0.1, SSE())

        prediction = network.predict_cached(x)
        mask = first.last_mask
        weight_grads, bias_grads = optimizer.gradients(network, prediction, target)

        # dropped inputs receive no weight gradient
        assert np.all(weight_grads[0][:, mask == 0] == 0.0)

        def loss_with_mask(weights):
            hidden = np.tanh(weights @ (x * mask) + first.biases)
            return SSE().total(second.weights @ hidden + second.biases, target)

        eps = 1e-6
        numeric = np.zeros_like(first.weights)
        for idx in np.ndindex(first.weights.shape):
            bump = np.zeros_like(first.weights)
            bump[idx] = eps
            numeric[idx] = (loss_with_mask(first.weights + bump) - loss_with_mask(first.weights - bump)) / (2 * eps)
        np.testing.assert_allclose(weight_grads[0], numeric, rtol=1e-5, atol=1e-8)


# ── Cache state ──────────────────────────────────────────────────
class TestStaleCache:

    def test_before_any_forward_pass(self, rng) -> None:
        network = _small_network(rng)
        with pytest.raises(StaleCacheError, match="predict_cached"):
            SGD(0.1, SSE()).gradients(network, np.zeros(2), np.zeros(2))

    def test_after_plain_predict(self, rng) -> None:
        network = _small_network(rng)
        prediction = network.predict(np.ones(3))
        with pytest.raises(StaleCacheError):
            SGD(0.1, SSE()).gradients(network, prediction, np.zeros(2))

    def test_after_an_update(self, rng) -> None:
        network = _small_network(rng)
        optimizer = SGD(0.1, SSE())
        optimizer.optimize_once(network, np.ones(3), np.zeros(2))
        assert not network.is_cached
        with pytest.raises(StaleCacheError):
            optimizer.gradients(network, np.zeros(2), np.zeros(2))

    def test_after_editing_weights_in_place(self, rng) -> None:
        network = _small_network(rng)
        prediction = network.predict_cached(np.ones(3))
        network.get_weights_mut()[0][:] += 1.0
        with pytest.raises(StaleCacheError):
            SGD(0.1, SSE()).gradients(network, prediction, np.zeros(2))

    def test_after_editing_biases_in_place(self, rng) -> None:
        network = _small_network(rng)
        prediction = network.predict_cached(np.ones(3))
        network.get_biases_mut()[-1][:] = 0.0
        with pytest.raises(StaleCacheError):
            SGD(0.1, SSE()).gradients(network, prediction, np.zeros(2))

    def test_stale_cache_error_is_a_runtime_error(self) -> None:
        assert issubclass(StaleCacheError, RuntimeError)


# ── Updates ──────────────────────────────────────────────────────
class TestUpdates:

    def test_apply_gradients_rule(self, rng) -> None:
        network = _small_network(rng)
        optimizer = SGD(0.25, SSE())
        before_w = [w.copy() for w in network.get_weights()]
        before_b = [b.copy() for b in network.get_biases()]
        weight_grads = [np.ones_like(w) for w in before_w]
        bias_grads = [np.full_like(b, 2.0) for b in before_b]

        optimizer.apply_gradients(network, weight_grads, bias_grads)

        for w0, w1 in zip(before_w, network.get_weights()):
            np.testing.assert_allclose(w1, w0 - 0.25)
        for b0, b1 in zip(before_b, network.get_biases()):
            np.testing.assert_allclose(b1, b0 - 0.5)

    def test_apply_gradients_checks_layer_count(self, rng) -> None:
        network = _small_network(rng)
        with pytest.raises(ShapeError):
            SGD(0.1, SSE()).apply_gradients(network, [np.zeros((4, 3))], [np.zeros(4)])

    def test_optimize_once_reduces_loss(self, rng) -> None:
        network = _small_network(rng)
        optimizer = SGD(0.05, SSE())
        x = np.array([0.5, -1.0, 0.25])
        target = np.array([0.9, 0.1])

        before = SSE().total(network.predict(x), target)
        reported = optimizer.optimize_once(network, x, target)
        after = SSE().total(network.predict(x), target)

        assert reported == pytest.approx(before)
        assert after < before

    def test_optimize_once_with_dropout(self, rng) -> None:
        network = Network([
            Layer(8, 4, transfer=Dropout(0.5, rng=rng), activation="relu", rng=rng),
            Layer(2, 8, rng=rng),
        ])
        loss = SGD(0.1, SSE()).optimize_once(network, np.ones(4), np.array([1.0, 0.0]))
        assert np.isfinite(loss)
        assert not network.is_cached

    @pytest.mark.parametrize("batched", [False, True], ids=["once", "batch"])
    def test_cce_on_softmax_output_warns(self, rng, caplog, batched) -> None:
        network = Network.from_sizes([3, 4], ["softmax"], rng=rng)
        optimizer = SGD(0.1, CCE())
        x, target = np.ones(3), np.array([0.0, 0.0, 1.0, 0.0])
        with caplog.at_level(logging.WARNING):
            if batched:
                optimizer.optimize_batch(network, [x], [target])
            else:
                optimizer.optimize_once(network, x, target)
        assert "applies it twice" in caplog.text

    def test_cce_on_linear_output_is_quiet(self, rng, caplog) -> None:
        network = Network.from_sizes([3, 4], ["linear"], rng=rng)
        with caplog.at_level(logging.WARNING):
            SGD(0.1, CCE()).optimize_once(network, np.ones(3), np.array([0.0, 0.0, 1.0, 0.0]))
        assert "applies it twice" not in caplog.text


# ── Batches ──────────────────────────────────────────────────────
class TestBatches:

    def test_failing_example_leaves_network_stale_and_unchanged(self, rng) -> None:
        network = _small_network(rng)
        before = [w.copy() for w in network.get_weights()]
        with pytest.raises(ShapeError):
            SGD(0.1, SSE()).optimize_batch(network, [np.ones(3), np.ones(4)], [np.zeros(2), np.zeros(2)])
        assert not any(layer.is_cached for layer in network)
        for w0, w1 in zip(before, network.get_weights()):
            np.testing.assert_array_equal(w0, w1)

    def test_identical_examples_average_to_single_gradient(self, rng) -> None:
        network = _small_network(rng)
        optimizer = SGD(0.1, SSE())
        x = np.array([0.3, 0.6, -0.9])
        target = np.array([1.0, 0.0])

        prediction = network.predict_cached(x)
        single_w, single_b = optimizer.gradients(network, prediction, target)
        batch_w, batch_b, _ = optimizer.batch_gradients(network, [x] * 5, [target] * 5)

        for single, batch in zip(single_w + single_b, batch_w + batch_b):
            np.testing.assert_allclose(batch, single, rtol=1e-12, atol=1e-15)

    def test_optimize_batch_matches_optimize_once_for_identical_examples(self, rng) -> None:
        network = _small_network(rng)
        clone = network.copy()
        optimizer = SGD(0.1, SSE())
        x = np.array([0.3, 0.6, -0.9])
        target = np.array([1.0, 0.0])

        optimizer.optimize_once(network, x, target)
        optimizer.optimize_batch(clone, [x] * 4, [target] * 4)

        for a, b in zip(network.get_weights() + network.get_biases(), clone.get_weights() + clone.get_biases()):
            np.testing.assert_allclose(a, b, rtol=1e-12, atol=1e-15)

    def test_batch_gradient_is_mean_of_example_gradients(self, rng) -> None:
        network = _small_network(rng)
        optimizer = SGD(0.1, SSE())
        inputs = [rng.normal(size=3) for _ in range(3)]
        targets = [rng.normal(size=2) for _ in range(3)]

        per_example = []
        for x, t in zip(inputs, targets):
            prediction = network.predict_cached(x)
            per_example.append(optimizer.gradients(network, prediction, t))
        batch_w, batch_b, mean_loss = optimizer.batch_gradients(network, inputs, targets)

        for i in range(len(network)):
            np.testing.assert_allclose(batch_w[i], np.mean([g[0][i] for g in per_example], axis=0))
            np.testing.assert_allclose(batch_b[i], np.mean([g[1][i] for g in per_example], axis=0))
        expected_loss = np.mean([SSE().total(network.predict(x), t) for x, t in zip(inputs, targets)])
        assert mean_loss == pytest.approx(expected_loss)

    def test_empty_batch_is_a_no_op(self, rng) -> None:
        network = _small_network(rng)
        before = [w.copy() for w in network.get_weights()]
        assert SGD(0.1, SSE()).optimize_batch(network, [], []) == 0.0
        for w0, w1 in zip(before, network.get_weights()):
            np.testing.assert_array_equal(w0, w1)

    def test_mismatched_batch_lengths_raise(self, rng) -> None:
        network = _small_network(rng)
        with pytest.raises(ValueError, match="must match"):
            SGD(0.1, SSE()).optimize_batch(network, [np.ones(3)], [])


# ── Convergence ──────────────────────────────────────────────────
class TestConvergence:

    def test_linear_regression_converges_monotonically(self, rng) -> None:
        inputs = rng.uniform(-1, 1, size=(50, 2))
        targets = inputs @ np.array([0.5, -0.3]) + 0.2
        network = Network([Layer(1, 2, rng=rng)])
        optimizer = SGD(0.5, MSE())

        history = fit(network, optimizer, inputs, targets, epochs=300, batch_size=50,
                      shuffle=False, log_every=0, rng=rng)

        losses = np.array(history.loss)
        assert np.all(np.diff(losses) <= 1e-12)
        assert losses[-1] < 1e-3
        np.testing.assert_allclose(network.layers[0].weights, [[0.5, -0.3]], atol=1e-3)
        np.testing.assert_allclose(network.layers[0].biases, [0.2], atol=1e-3)

    def test_deep_network_fits_single_example(self, rng) -> None:
        network = Network.from_sizes([2, 3, 4, 5, 6], ["softplus", "relu", "sigmoid", "leaky_relu"], rng=rng)
        optimizer = SGD(0.1, MSE())
        x = np.array([1.0, 0.0])
        target = np.linspace(0, 1, 6)

        cost = None
        for _ in range(200):
            cost = optimizer.optimize_batch(network, [x], [target])
        assert cost <= 1e-4

    def test_tanh_network_fits_sine(self, rng) -> None:
        inputs = np.linspace(-np.pi, np.pi, 40)
        targets = np.sin(inputs)
        network = Network.from_sizes([1, 16, 1], ["tanh", "linear"], weight_init="xavier", rng=rng)
        optimizer = SGD(0.01, SSE())

        def mean_loss():
            return np.mean([SSE().total(network.predict([x]), [t]) for x, t in zip(inputs, targets)])

        initial = mean_loss()
        fit(network, optimizer, inputs, targets, epochs=300, batch_size=1, log_every=0, rng=rng)
        assert mean_loss() < 0.5 * initial
