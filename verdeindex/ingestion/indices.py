"""
Module `ingestion.indices` provides the normalized-difference index engine.

All supported indices share one formula, ``(A - B) / (A + B)``; the registry
only records which band roles feed ``A`` and ``B``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Tuple

import numpy as np

from verdeindex.core.errors import UnsupportedIndex

# Collection 2 Level 2 surface reflectance scaling
REFLECTANCE_SCALE = 0.0000275
REFLECTANCE_OFFSET = -0.2

INDEX_REGISTRY: Mapping[str, Tuple[str, str]] = MappingProxyType(
    {
        "ndvi": ("nir", "red"),
        "ndbi": ("swir", "nir"),
        "ndwi": ("green", "nir"),
    }
)


def index_roles(index: str) -> Tuple[str, str]:
    """Return the (A, B) band roles for ``index`` (case-insensitive)."""
    key = index.lower()
    if key not in INDEX_REGISTRY:
        raise UnsupportedIndex(
            f"Index '{index}' not supported. Choose from: {list(INDEX_REGISTRY)}"
        )
    return INDEX_REGISTRY[key]


def rescale_reflectance(dn: np.ndarray) -> np.ndarray:
    """Convert stored digital numbers to surface reflectance."""
    return np.asarray(dn, dtype=np.float64) * REFLECTANCE_SCALE + REFLECTANCE_OFFSET


def normalized_difference(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Compute ``(a - b) / (a + b)`` and clamp the result into [-1, 1].

    Pixels where ``a + b == 0`` or either input is ``NaN`` get ``NaN``.
    Rescaled reflectance can be negative, so the raw ratio may leave [-1, 1];
    clamping happens only after the division.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denom = a + b
    zero = denom == 0
    with np.errstate(divide="ignore", invalid="ignore"):
        raw = (a - b) / np.where(zero, 1.0, denom)
    raw = np.where(zero, np.nan, raw)
    return np.clip(raw, -1.0, 1.0)


def compute_index(bands: Mapping[str, np.ndarray], index: str) -> np.ndarray:
    """
    Evaluate ``index`` on rescaled reflectance arrays keyed by band role.

    Args:
        bands: mapping of role ("nir", "red", ...) to reflectance array.
        index: one of the keys in INDEX_REGISTRY (case-insensitive).

    Returns:
        float64 array clamped to [-1, 1] with ``NaN`` for invalid pixels.
    """
    role_a, role_b = index_roles(index)
    missing = [r for r in (role_a, role_b) if r not in bands]
    if missing:
        raise KeyError(f"Bands {missing} required for '{index}' are missing")
    return normalized_difference(bands[role_a], bands[role_b])
