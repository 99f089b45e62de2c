"""Tests for QA_PIXEL cloud and shadow masking."""

import numpy as np

from verdeindex.ingestion.mask import apply_mask, flag_fill, qa_valid_mask


def test_cloud_and_shadow_bits_invalidate():
    qa = np.array([0b11000, 0b00001, 0b01000, 0b10000, 0], dtype=np.uint16)
    assert qa_valid_mask(qa).tolist() == [False, True, False, False, True]


def test_other_bits_are_ignored():
    # dilated cloud (bit 1), clear (bit 6), water (bit 7)
    qa = np.array([1 << 1, 1 << 6, 1 << 7, 21824], dtype=np.uint16)
    assert qa_valid_mask(qa).all()


def test_float_qa_is_cast():
    assert qa_valid_mask(np.array([24.0, 1.0])).tolist() == [False, True]


def test_apply_mask_sets_nan_and_copies():
    band = np.array([[1, 2], [3, 4]], dtype=np.uint16)
    valid = np.array([[True, False], [True, True]])
    out = apply_mask(band, valid)
    assert out.dtype == np.float64
    assert np.isnan(out[0, 1])
    assert out[1, 1] == 4
    assert band[0, 1] == 2


def test_flag_fill_marks_pixels_invalid():
    qa = np.array([[0, 1 << 3], [1, 0]], dtype=np.uint16)
    fill = np.array([[True, True], [False, False]])
    flagged = flag_fill(qa, fill)
    assert flagged.dtype == np.uint16
    assert qa_valid_mask(flagged).tolist() == [[False, False], [True, True]]
    # input is left untouched
    assert qa[0, 0] == 0
