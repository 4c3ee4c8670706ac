"""Feed-forward network and the mini-batch loss/gradient oracle."""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np
import torch
from torch import nn
from torch.nn import functional as F

from .errors import DimensionMismatch
from .topology import Topology

Array = np.ndarray

ACTIVATIONS = ("tanh", "sigmoid", "identity")
LOSSES = ("cross_entropy", "squared_error")


def _activation(name: str) -> Callable[[torch.Tensor], torch.Tensor]:
    if name == "tanh":
        return torch.tanh
    if name == "sigmoid":
        return torch.sigmoid
    if name == "identity":
        return lambda x: x
    raise ValueError(f"unknown activation '{name}', expected one of {ACTIVATIONS}.")


def cross_entropy(outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    """Batch mean of ``-log softmax`` at the one-hot target."""
    return -(targets * F.log_softmax(outputs, dim=1)).sum(dim=1).mean()


def squared_error(outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    """Squared residual summed over outputs, averaged over the batch."""
    return ((outputs - targets) ** 2).sum(dim=1).mean()


def _loss(name: str) -> Callable[[torch.Tensor, torch.Tensor], torch.Tensor]:
    if name == "cross_entropy":
        return cross_entropy
    if name == "squared_error":
        return squared_error
    raise ValueError(f"unknown loss '{name}', expected one of {LOSSES}.")


class LipschitzMLP(nn.Module):
    """Plain MLP in float64; no activation after the last layer."""

    def __init__(self, topology: Topology, activation: str = "tanh") -> None:
        super().__init__()
        self.topology = topology
        self.activation_name = activation
        self._act = _activation(activation)
        widths = topology.widths
        self.layers = nn.ModuleList(
            nn.Linear(widths[i], widths[i + 1]).double() for i in range(topology.num_layers)
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if x.dim() == 1:
            x = x.unsqueeze(0)
        for i, layer in enumerate(self.layers):
            x = layer(x)
            if i < len(self.layers) - 1:
                x = self._act(x)
        return x

    @torch.no_grad()
    def load_arrays(self, weights: Sequence[Array], biases: Sequence[Array]) -> None:
        self.topology.check_weights(weights)
        self.topology.check_biases(biases)
        for layer, W, b in zip(self.layers, weights, biases):
            layer.weight.copy_(torch.as_tensor(np.asarray(W), dtype=torch.float64))
            layer.bias.copy_(torch.as_tensor(np.asarray(b), dtype=torch.float64))

    def arrays(self) -> Tuple[List[Array], List[Array]]:
        weights = [layer.weight.detach().cpu().numpy().copy() for layer in self.layers]
        biases = [layer.bias.detach().cpu().numpy().copy() for layer in self.layers]
        return weights, biases


class BatchLossOracle:
    """Mini-batch loss and gradient for the current weights.

    Each call evaluates batch ``iteration mod (n / batch_size)`` and advances
    the internal counter, so the caller never handles batching.
    """

    def __init__(
        self,
        topology: Topology,
        inputs: Array,
        targets: Array,
        batch_size: int | None = None,
        loss: str = "cross_entropy",
        activation: str = "tanh",
    ) -> None:
        inputs = np.asarray(inputs, dtype=float)
        targets = np.asarray(targets, dtype=float)
        if inputs.ndim != 2 or inputs.shape[1] != topology.input_size:
            raise DimensionMismatch(f"inputs must have shape (n, {topology.input_size}), got {inputs.shape}.")
        if targets.ndim != 2 or targets.shape[1] != topology.output_size:
            raise DimensionMismatch(f"targets must have shape (n, {topology.output_size}), got {targets.shape}.")
        if inputs.shape[0] != targets.shape[0]:
            raise DimensionMismatch("inputs and targets must hold the same number of samples.")
        n = inputs.shape[0]
        batch_size = n if batch_size is None else int(batch_size)
        if batch_size <= 0 or n % batch_size != 0:
            raise ValueError(f"sample count {n} must be a positive multiple of batch_size {batch_size}.")

        self.topology = topology
        self.batch_size = batch_size
        self.num_batches = n // batch_size
        self.loss_name = loss
        self._loss = _loss(loss)
        self.model = LipschitzMLP(topology, activation=activation)
        self.inputs = torch.as_tensor(inputs, dtype=torch.float64)
        self.targets = torch.as_tensor(targets, dtype=torch.float64)
        self.iteration = 0

    @property
    def num_samples(self) -> int:
        return int(self.inputs.shape[0])

    def batch(self, index: int) -> Tuple[torch.Tensor, torch.Tensor]:
        start = (index % self.num_batches) * self.batch_size
        stop = start + self.batch_size
        return self.inputs[start:stop], self.targets[start:stop]

    def __call__(self, weights: Sequence[Array], biases: Sequence[Array]) -> Tuple[List[Array], List[Array], float]:
        """Return ``(weight gradients, bias gradients, loss)`` on the current batch."""
        self.model.load_arrays(weights, biases)
        self.model.zero_grad(set_to_none=True)
        x, y = self.batch(self.iteration)
        self.iteration += 1
        loss = self._loss(self.model(x), y)
        loss.backward()
        grad_w = [layer.weight.grad.detach().cpu().numpy().copy() for layer in self.model.layers]
        grad_b = [layer.bias.grad.detach().cpu().numpy().copy() for layer in self.model.layers]
        return grad_w, grad_b, float(loss.item())

    @torch.no_grad()
    def predict(self, weights: Sequence[Array], biases: Sequence[Array], inputs: Array | None = None) -> Array:
        self.model.load_arrays(weights, biases)
        x = self.inputs if inputs is None else torch.as_tensor(np.asarray(inputs, dtype=float), dtype=torch.float64)
        return self.model(x).cpu().numpy()

    @torch.no_grad()
    def full_loss(self, weights: Sequence[Array], biases: Sequence[Array]) -> float:
        self.model.load_arrays(weights, biases)
        return float(self._loss(self.model(self.inputs), self.targets).item())

    def accuracy(self, weights: Sequence[Array], biases: Sequence[Array]) -> float:
        """Fraction of samples whose arg-max output matches the arg-max target."""
        outputs = self.predict(weights, biases)
        labels = self.targets.cpu().numpy().argmax(axis=1)
        return float(np.mean(outputs.argmax(axis=1) == labels))

    def summary(self, weights: Sequence[Array], biases: Sequence[Array]) -> Dict[str, float]:
        return {"loss": self.full_loss(weights, biases), "accuracy": self.accuracy(weights, biases)}
