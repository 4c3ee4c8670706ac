"""Dataset helpers: CSV classification data and synthetic Gaussian blobs."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import numpy as np


def one_hot(labels: np.ndarray, n_classes: int) -> np.ndarray:
    """Encode integer labels ``0..n_classes-1`` as rows of the identity."""
    labels = np.asarray(labels).reshape(-1)
    if labels.size and (labels.min() < 0 or labels.max() >= n_classes):
        raise ValueError(f"labels must lie in [0, {n_classes}), got range [{labels.min()}, {labels.max()}].")
    if not np.all(np.equal(np.mod(labels, 1), 0)):
        raise ValueError("labels must be integers.")
    out = np.zeros((labels.shape[0], int(n_classes)), dtype=float)
    out[np.arange(labels.shape[0]), labels.astype(int)] = 1.0
    return out


def load_csv_dataset(path: str | Path, n_inputs: int, n_classes: int) -> Tuple[np.ndarray, np.ndarray]:
    """Rows of ``n_inputs`` features followed by an integer class label.

    Returns ``(inputs, one_hot_targets)``.
    """
    data = np.loadtxt(str(path), delimiter=",", ndmin=2)
    if data.shape[1] != n_inputs + 1:
        raise ValueError(f"{path}: expected {n_inputs + 1} columns, got {data.shape[1]}.")
    inputs = data[:, :n_inputs].astype(float)
    targets = one_hot(data[:, n_inputs], n_classes)
    return inputs, targets


def save_csv_dataset(path: str | Path, inputs: np.ndarray, labels: np.ndarray) -> None:
    inputs = np.asarray(inputs, dtype=float)
    labels = np.asarray(labels).reshape(-1, 1)
    fmt = ["%.17g"] * inputs.shape[1] + ["%d"]
    np.savetxt(str(path), np.hstack([inputs, labels]), delimiter=",", fmt=fmt)


def make_blobs_dataset(
    n_samples: int = 300,
    n_classes: int = 3,
    seed: Optional[int] = None,
    spread: float = 0.3,
    radius: float = 1.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Gaussian blobs in 2-D, centres evenly spaced on a circle.

    Returns ``(inputs, labels)``; samples are assigned to classes round-robin
    so every class has ``n_samples // n_classes`` or one more points.
    """
    if n_samples <= 0 or n_classes <= 0:
        raise ValueError("n_samples and n_classes must be positive.")
    rng = np.random.default_rng(seed)
    angles = 2.0 * np.pi * np.arange(n_classes) / n_classes
    centres = radius * np.stack([np.cos(angles), np.sin(angles)], axis=1)
    labels = np.arange(n_samples) % n_classes
    inputs = centres[labels] + spread * rng.standard_normal((n_samples, 2))
    perm = rng.permutation(n_samples)
    return inputs[perm], labels[perm]
