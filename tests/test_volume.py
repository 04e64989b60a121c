import logging

import numpy as np
import pytest

from stipple_partition.config import DENSITY_MAX
from stipple_partition.core.structures import Rect
from stipple_partition.core.volume import VolumeSumTable


BOXES = [
    (Rect(0, 0, 6, 5), 0, 3),
    (Rect(1, 1, 4, 3), 1, 2),
    (Rect(2, 0, 3, 5), 0, 1),
    (Rect(-2, -2, 3, 3), -1, 2),
    (Rect(0, 0, 6, 5), 1, 10),
]


def brute_mass(stack, r, zmin, zmax):
    return int(stack[max(zmin, 0):zmax,
                     max(r.ymin, 0):max(r.ymax, 0),
                     max(r.xmin, 0):max(r.xmax, 0)].astype(np.uint64).sum())


@pytest.mark.parametrize("box", BOXES)
def test_range_mass_matches_brute_force(random_volume, box):
    table, stack = random_volume
    r, zmin, zmax = box
    assert table.range_mass(r, zmin, zmax) == brute_mass(stack, r, zmin, zmax)


@pytest.mark.parametrize("box", BOXES)
def test_neg_range_mass_is_complement(random_volume, box):
    table, stack = random_volume
    r, zmin, zmax = box
    n = r.intersect(table.rect).area() * (min(zmax, 3) - max(zmin, 0))
    assert table.neg_range_mass(r, zmin, zmax) == n * DENSITY_MAX - brute_mass(stack, r, zmin, zmax)


def test_zmax_defaults_to_length(random_volume):
    table, stack = random_volume
    assert table.range_mass(table.rect) == int(stack.astype(np.uint64).sum())
    assert table.total_mass() == int(stack.astype(np.uint64).sum())


def test_empty_ranges(random_volume):
    table, _ = random_volume
    assert table.range_mass(table.rect, 2, 2) == 0
    assert table.range_mass(Rect(3, 3, 3, 4), 0, 3) == 0
    assert table.prefix_at(0, 0, 3) == 0
    assert table.neg_prefix_at(0, 0, -1) == 0


def test_value_at_defaults_to_last_frame(random_volume):
    table, stack = random_volume
    assert table.value_at(2, 3) == int(stack[2, 3, 2])
    assert table.value_at(2, 3, 0) == int(stack[0, 3, 2])
    assert table.value_at(100, 3) == 0


def test_frame_samples(random_volume):
    table, stack = random_volume
    for z in range(3):
        np.testing.assert_array_equal(table.frame_samples(z), stack[z])
    with pytest.raises(IndexError):
        table.frame_samples(3)


def test_full_table_rejects_append(random_volume, caplog):
    table, _ = random_volume
    with caplog.at_level(logging.WARNING):
        assert table.append_frame(np.zeros((5, 6), dtype=np.uint16)) is False
    assert table.len_z == 3
    assert "full" in caplog.text


def test_partial_frame_is_clipped():
    table = VolumeSumTable.empty(4, 4, 2)
    frame = np.arange(16, dtype=np.uint16).reshape(4, 4)
    assert table.append_frame(frame, origin=(2, 2))
    assert table.total_mass() == int(frame[:2, :2].sum())
    assert table.value_at(3, 3) == int(frame[1, 1])
    assert table.value_at(0, 0) == 0


def test_disjoint_frame_appends_zero_frame():
    table = VolumeSumTable.empty(4, 4, 3)
    table.append_frame(np.full((4, 4), 7, dtype=np.uint16))
    assert table.append_frame(np.full((2, 2), 9, dtype=np.uint16), origin=(10, 10))
    assert table.len_z == 2
    assert table.range_mass(table.rect, 1, 2) == 0
    assert table.total_mass() == 16 * 7


def test_from_frame():
    frame = np.full((3, 2), 5, dtype=np.uint16)
    table = VolumeSumTable.from_frame(frame, cap_z=4)
    assert (table.width, table.height, table.len_z, table.cap_z) == (2, 3, 1, 4)
    assert table.total_mass() == 30
    assert not table.is_full()


@pytest.mark.parametrize("cap", [0, -3])
def test_non_positive_capacity(cap):
    with pytest.raises(ValueError):
        VolumeSumTable.empty(4, 4, cap)


def test_overflow_precondition():
    with pytest.raises(ValueError):
        VolumeSumTable.empty(65536, 65536, 65536)
