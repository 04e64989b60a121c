import numpy as np
import pytest

from stipple_partition.config import DENSITY_MAX
from stipple_partition.core.mask import RegionMask, MaskRun
from stipple_partition.core.structures import Rect
from stipple_partition.core.sumtable import PlaneSumTable, AxisSumTable


def checker_mask(rect, axis=0):
    """Бинарная маска: чередование покрытых и пустых отрезков длины 1"""
    lo, hi = rect.lo(axis), rect.hi(axis)
    cross = 1 - axis
    lines = []
    for line in range(rect.lo(cross), rect.hi(cross)):
        lines.append([((DENSITY_MAX if (x + line) % 2 else 0), x + 1) for x in range(lo, hi)])
    return RegionMask.from_runs(rect, axis, lines)


@pytest.mark.parametrize("axis", [0, 1])
def test_full_mask_matches_table(random_samples, axis):
    table = PlaneSumTable.from_samples(random_samples)
    mask = RegionMask.full(table.rect, axis)
    agg = mask.apply_to(table)

    assert agg.weighted_mass == DENSITY_MAX * table.total_mass()
    assert agg.mass == table.total_mass()
    assert agg.area == table.rect.area()
    assert agg.mean_value() == table.total_mass() // table.rect.area()


def test_apply_to_sub_rect_and_negated(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    mask = RegionMask.full(table.rect)
    r = Rect(2, 1, 6, 5)
    assert mask.apply_to(table, r).mass == table.range_mass(r)
    assert mask.apply_to(table, r, negated=True).mass == table.neg_range_mass(r)
    assert mask.apply_to(table, Rect(50, 50, 60, 60)).weighted_mass == 0


def test_apply_to_axis_table(random_samples):
    plane = PlaneSumTable.from_samples(random_samples)
    cols = AxisSumTable.from_samples(random_samples, axis=1)
    mask = checker_mask(plane.rect, axis=1)
    assert mask.apply_to(cols) == mask.apply_to(plane)

    with pytest.raises(ValueError):
        RegionMask.full(plane.rect, axis=0).apply_to(cols)


def test_masked_mass_counts_only_covered_pixels(random_samples):
    table = PlaneSumTable.from_samples(random_samples)
    mask = checker_mask(table.rect)
    covered = sum(int(random_samples[y, x])
                  for y in range(7) for x in range(9) if (x + y) % 2)
    assert mask.apply_to(table).mass == covered


def test_cross_centroid():
    samples = np.zeros((4, 4), dtype=np.uint16)
    samples[2, :] = 1000
    table = PlaneSumTable.from_samples(samples)
    agg = RegionMask.full(table.rect).apply_to(table)
    assert agg.cross_centroid == 2.0
    assert RegionMask.full(table.rect).apply_to(PlaneSumTable.empty(4, 4)).cross_centroid is None


def test_from_runs_merges_equal_weights():
    mask = RegionMask.from_runs(Rect(0, 0, 4, 1), 0, [[(100, 1), (100, 3), (0, 4)]])
    assert mask.lines[0] == (MaskRun(100, 3), MaskRun(0, 4))


@pytest.mark.parametrize("lines", [
    [[(100, 3), (0, 2)]],           # точки разрыва не возрастают
    [[(100, 2), (0, 3)]],           # последняя точка не равна концу линии
    [[(100, 2), (0, 5)]],           # точка за концом линии
    [[(70000, 4)]],                 # вес вне диапазона
    [[]],                           # пустая линия
    [[(100, 4)], [(100, 4)]],       # лишняя линия
])
def test_from_runs_rejects_malformed(lines):
    with pytest.raises(ValueError):
        RegionMask.from_runs(Rect(0, 0, 4, 1), 0, lines)


def test_intersect_binary_masks_is_idempotent():
    rect = Rect(0, 0, 5, 4)
    mask = checker_mask(rect)
    assert mask.intersect(mask) == mask
    full = RegionMask.full(rect)
    assert full.intersect(full) == full


def test_intersect_with_full_keeps_fractional_weights():
    rect = Rect(0, 0, 4, 2)
    mask = RegionMask.from_runs(rect, 0, [[(1234, 2), (40000, 4)], [(7, 1), (65535, 4)]])
    assert mask.intersect(RegionMask.full(rect)) == mask


def test_intersect_rounds_and_prunes():
    rect = Rect(0, 0, 4, 1)
    half = RegionMask.from_runs(rect, 0, [[(32768, 4)]])
    assert half.intersect(half).lines[0] == (MaskRun(16384, 4),)

    a = RegionMask.from_runs(rect, 0, [[(DENSITY_MAX, 1), (0, 4)]])
    b = RegionMask.from_runs(rect, 0, [[(0, 2), (DENSITY_MAX, 4)]])
    assert a.intersect(b).lines[0] == (MaskRun(0, 4),)


def test_intersect_requires_same_rect():
    with pytest.raises(ValueError):
        RegionMask.full(Rect(0, 0, 4, 4)).intersect(RegionMask.full(Rect(0, 0, 4, 3)))
    with pytest.raises(ValueError):
        RegionMask.full(Rect(0, 0, 4, 4), 0).intersect(RegionMask.full(Rect(0, 0, 4, 4), 1))


def test_clip_preserves_coverage():
    rect = Rect(0, 0, 6, 5)
    mask = checker_mask(rect)
    sub = Rect(1, 2, 4, 5)
    clipped = mask.clip(sub)

    assert clipped.rect == sub
    for y in range(5):
        for x in range(6):
            expected = mask.coverage_at(x, y) if sub.contains(x, y) else 0
            assert clipped.coverage_at(x, y) == expected

    assert mask.clip(Rect(10, 10, 12, 12)).lines == []


def test_runs_are_restartable():
    mask = checker_mask(Rect(0, 0, 4, 2))
    first = list(mask.runs(1))
    assert first == list(mask.runs(1))
    assert first[0][0] == 0 and first[-1][1] == 4
    assert list(mask.runs(7)) == []


def test_half_plane_integer_boundary():
    rect = Rect(0, 0, 4, 1)
    mask = RegionMask.half_plane(rect, 0, (2.0, 0.0), (1.0, 0.0))
    assert mask.lines[0] == (MaskRun(0, 2), MaskRun(DENSITY_MAX, 4))

    flipped = RegionMask.half_plane(rect, 0, (2.0, 0.0), (-1.0, 0.0))
    assert flipped.lines[0] == (MaskRun(DENSITY_MAX, 2), MaskRun(0, 4))


def test_half_plane_fractional_pixel():
    mask = RegionMask.half_plane(Rect(0, 0, 4, 1), 0, (1.5, 0.0), (1.0, 0.0))
    assert mask.lines[0] == (MaskRun(0, 1), MaskRun(32768, 2), MaskRun(DENSITY_MAX, 4))


def test_half_plane_parallel_to_lines():
    mask = RegionMask.half_plane(Rect(0, 0, 3, 4), 0, (0.0, 2.0), (0.0, 1.0))
    assert [mask.coverage_at(0, y) for y in range(4)] == [0, 0, DENSITY_MAX, DENSITY_MAX]

    with pytest.raises(ValueError):
        RegionMask.half_plane(Rect(0, 0, 3, 4), 0, (0.0, 0.0), (0.0, 0.0))
