"""
conftest.py - Shared fixtures for the clear_ffnn test suite.
"""
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture()
def rng() -> np.random.Generator:
    """Seeded generator so every test run draws the same parameters."""
    return np.random.default_rng(1234)


def numeric_gradients(network, loss, inputs, target, eps: float = 1e-6):
    """Central finite differences of loss.total(network.predict(inputs), target)."""
    weight_grads, bias_grads = [], []
    for layer in network.layers:
        for param, store in ((layer.weights, weight_grads), (layer.biases, bias_grads)):
            grad = np.zeros_like(param)
            for idx in np.ndindex(param.shape):
                original = param[idx]
                param[idx] = original + eps
                loss_plus = loss.total(network.predict(inputs), target)
                param[idx] = original - eps
                loss_minus = loss.total(network.predict(inputs), target)
                param[idx] = original
                grad[idx] = (loss_plus - loss_minus) / (2 * eps)
            store.append(grad)
    return weight_grads, bias_grads


@pytest.fixture()
def finite_difference():
    return numeric_gradients
