"""
GraphForge Parameter Storage
=============================
Reads and writes a model's params as a flat ``name → tensor`` mapping.

Names are the dotted attribute paths of the model tree, e.g.
``encoder.layers.0.attention.query.w``. The file format is safetensors;
loading copies each tensor into the existing param storage in place, so
models already shared with running evaluations keep their identity.

Usage:
    >>> save_params(model, "weights.safetensors")
    >>> load_params(model, "weights.safetensors")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Union

import torch
from safetensors.torch import load_file, save_file

from graphforge.errors import ShapeMismatchError
from graphforge.nn.base import Model

logger = logging.getLogger(__name__)


def state_dict(model: Model) -> Dict[str, torch.Tensor]:
    """Snapshot of every param as a contiguous copy, keyed by dotted name."""
    return {name: p.value.detach().clone().contiguous() for name, p in model.named_params()}


def load_state_dict(model: Model, tensors: Dict[str, torch.Tensor], strict: bool = False) -> None:
    """
    Copy ``tensors`` into the model's params in place.

    Parameters
    ----------
    model : Model
        Target model.
    tensors : dict
        Dotted name → tensor.
    strict : bool
        If True, missing or unexpected keys raise ``KeyError`` instead of
        being logged as warnings.

    Raises
    ------
    ShapeMismatchError
        If a stored tensor does not match the shape of its param.
    """
    params = dict(model.named_params())
    missing = [name for name in params if name not in tensors]
    unexpected = [name for name in tensors if name not in params]

    if strict and (missing or unexpected):
        raise KeyError(f"Missing keys: {missing}; unexpected keys: {unexpected}")
    if missing:
        logger.warning(f"Missing keys in checkpoint: {missing}")
    if unexpected:
        logger.warning(f"Unexpected keys in checkpoint: {unexpected}")

    # All shapes are checked before the first copy so a failed load
    # leaves the model untouched.
    for name, p in params.items():
        if name in tensors and tensors[name].shape != p.shape:
            raise ShapeMismatchError(
                f"Param '{name}' has shape {tuple(p.shape)}, "
                f"checkpoint has {tuple(tensors[name].shape)}"
            )

    for name, p in params.items():
        if name in tensors:
            p.value.copy_(tensors[name].to(p.value.dtype))


def save_params(model: Model, path: Union[str, Path]) -> None:
    """Write every param of ``model`` to a safetensors file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    save_file(state_dict(model), str(path))
    logger.info(f"Saved {model.n_params / 1e6:.2f}M params to {path}")


def load_params(model: Model, path: Union[str, Path], strict: bool = False) -> None:
    """
    Load params from a safetensors file into ``model``.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Checkpoint not found: {path}")
    load_state_dict(model, load_file(str(path), device="cpu"), strict=strict)
    logger.info(f"Params loaded from {path}")
