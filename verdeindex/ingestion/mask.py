"""QA_PIXEL based cloud and cloud-shadow masking."""

from __future__ import annotations

import numpy as np

# Bits of the Collection 2 QA_PIXEL band that invalidate a pixel
_QA_EXCLUDE = {
    "CLOUD_SHADOW": 1 << 3,
    "CLOUD": 1 << 4,
}
_EXCLUDE_MASK = sum(_QA_EXCLUDE.values())

# Bit set on fill / no-data pixels so that the cloud mask drops them
FILL_AS_CLOUD = _QA_EXCLUDE["CLOUD"]


def qa_valid_mask(qa: np.ndarray) -> np.ndarray:
    """
    Return a boolean array that is True where none of the exclude bits are set.

    ``qa`` is the bit-packed 16-bit quality band; a pixel is invalid iff bit 3
    (cloud shadow) or bit 4 (cloud) is set.
    """
    qa = np.asarray(qa)
    if not np.issubdtype(qa.dtype, np.integer):
        qa = qa.astype(np.uint16)
    return (qa & _EXCLUDE_MASK) == 0


def apply_mask(band: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Return ``band`` as float64 with ``NaN`` wherever ``valid`` is False."""
    out = np.asarray(band, dtype=np.float64).copy()
    out[~valid] = np.nan
    return out


def flag_fill(qa: np.ndarray, fill: np.ndarray) -> np.ndarray:
    """Return a copy of ``qa`` with :data:`FILL_AS_CLOUD` set wherever ``fill``."""
    qa = np.asarray(qa)
    dtype = qa.dtype if np.issubdtype(qa.dtype, np.integer) else np.uint16
    out = qa.astype(dtype, copy=True)
    out[np.asarray(fill, dtype=bool)] |= FILL_AS_CLOUD
    return out
