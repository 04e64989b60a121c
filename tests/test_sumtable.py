import numpy as np
import pytest

from stipple_partition.config import DENSITY_MAX
from stipple_partition.core.structures import Rect
from stipple_partition.core.sumtable import PlaneSumTable, AxisSumTable, check_capacity


RECTS = [
    Rect(0, 0, 9, 7),
    Rect(2, 1, 5, 4),
    Rect(0, 3, 9, 4),
    Rect(8, 6, 9, 7),
    Rect(-3, -2, 4, 3),
    Rect(5, 5, 20, 20),
]


def brute_mass(samples, r):
    xs = slice(max(r.xmin, 0), max(min(r.xmax, samples.shape[1]), 0))
    ys = slice(max(r.ymin, 0), max(min(r.ymax, samples.shape[0]), 0))
    return int(samples[ys, xs].astype(np.uint64).sum())


@pytest.mark.parametrize("r", RECTS)
def test_range_mass_matches_brute_force(random_samples, r):
    table = PlaneSumTable.from_samples(random_samples)
    assert table.range_mass(r) == brute_mass(random_samples, r)


@pytest.mark.parametrize("r", RECTS)
def test_neg_range_mass_is_complement(random_samples, r):
    table = PlaneSumTable.from_samples(random_samples)
    area = r.intersect(table.rect).area()
    assert table.neg_range_mass(r) == area * DENSITY_MAX - brute_mass(random_samples, r)


def test_empty_rect_has_zero_mass(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    assert table.range_mass(Rect(3, 3, 3, 5)) == 0
    assert table.range_mass(Rect(4, 4, 2, 2)) == 0
    assert table.neg_range_mass(Rect(3, 3, 3, 5)) == 0


def test_prefix_is_monotone(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    v = table.values
    assert np.all(v[1:, :] >= v[:-1, :])
    assert np.all(v[:, 1:] >= v[:, :-1])


def test_out_of_bounds_point_queries_return_zero(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    assert table.prefix_at(-1, 0) == 0
    assert table.prefix_at(0, 7) == 0
    assert table.neg_prefix_at(9, 0) == 0
    assert table.value_at(100, 100) == 0


def test_value_at_and_samples(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    assert table.value_at(3, 2) == int(random_samples[2, 3])
    np.testing.assert_array_equal(table.samples(), random_samples)


def test_neg_prefix(uniform_table):
    assert uniform_table.neg_prefix_at(1, 1) == 4 * (DENSITY_MAX - 100)


def test_origin_offset(random_samples):
    table = PlaneSumTable.from_samples(random_samples, origin=(10, 20))
    assert table.rect == Rect(10, 20, 19, 27)
    assert table.range_mass(Rect(10, 20, 12, 22)) == int(random_samples[:2, :2].astype(np.uint64).sum())
    assert table.prefix_at(0, 0) == 0
    assert table.value_at(11, 21) == int(random_samples[1, 1])


def test_update_propagates(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    edited = random_samples.copy()

    table.update(4, 3, 500)
    edited[3, 4] = 500
    table.update(0, 0, 65535)
    edited[0, 0] = 65535

    np.testing.assert_array_equal(table.samples(), edited)
    for r in RECTS:
        assert table.range_mass(r) == brute_mass(edited, r)


def test_update_rejects_bad_density(uniform_table):
    with pytest.raises(ValueError):
        uniform_table.update(0, 0, 70000)


def test_from_image_uses_density_model():
    image = np.full((2, 3, 3), 255, dtype=np.uint8)
    table = PlaneSumTable.from_image(image, 'avg')
    assert table.total_mass() == 6 * DENSITY_MAX


def test_capacity_precondition():
    limit = (2 ** 64 - 1) // DENSITY_MAX
    check_capacity(limit)
    with pytest.raises(ValueError):
        check_capacity(limit + 1)


@pytest.mark.parametrize("bad", [
    np.zeros((2, 2, 2), dtype=np.uint16),
    np.array([[70000]]),
    np.array([[-1, 0]]),
])
def test_invalid_samples(bad):
    with pytest.raises(ValueError):
        PlaneSumTable.from_samples(bad)


@pytest.mark.parametrize("axis", [0, 1])
def test_axis_table_line_mass(random_samples, axis):
    table = AxisSumTable.from_samples(random_samples, axis=axis)
    n_lines = random_samples.shape[0] if axis == 0 else random_samples.shape[1]
    for line in range(n_lines):
        data = random_samples[line, :] if axis == 0 else random_samples[:, line]
        for lo, hi in [(0, len(data)), (1, 4), (2, 3), (-5, 100)]:
            expected = int(data[max(lo, 0):min(hi, len(data))].astype(np.uint64).sum())
            assert table.line_mass(axis, line, lo, hi) == expected


def test_axis_table_agrees_with_plane(random_samples):
    plane = PlaneSumTable.from_samples(random_samples)
    rows = AxisSumTable.from_samples(random_samples, axis=0)
    cols = AxisSumTable.from_samples(random_samples, axis=1)
    for r in RECTS:
        assert rows.range_mass(r) == plane.range_mass(r)
        assert cols.range_mass(r) == plane.range_mass(r)
    assert rows.value_at(5, 2) == cols.value_at(5, 2) == int(random_samples[2, 5])
    assert plane.line_mass(1, 3, 0, 7, negated=True) == cols.line_mass(1, 3, 0, 7, negated=True)


def test_axis_table_rejects_other_axis(random_samples):
    rows = AxisSumTable.from_samples(random_samples, axis=0)
    with pytest.raises(ValueError):
        rows.line_mass(1, 0, 0, 3)


def test_axis_table_line_outside_returns_zero(random_samples):
    rows = AxisSumTable.from_samples(random_samples, axis=0)
    assert rows.line_mass(0, 50, 0, 9) == 0
