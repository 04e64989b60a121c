import numpy as np
import pytest

from stipple_partition.core.sumtable import PlaneSumTable
from stipple_partition.core.volume import VolumeSumTable


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def random_samples(rng):
    """Случайное поле плотности 7x9"""
    return rng.integers(0, 65536, size=(7, 9), dtype=np.uint16)


@pytest.fixture
def uniform_table():
    """Поле 4x4 с постоянной плотностью 100"""
    return PlaneSumTable.from_samples(np.full((4, 4), 100, dtype=np.uint16))


@pytest.fixture
def hot_pixel_table():
    """Поле 4x4 с единственным горячим пикселем в (1, 2)"""
    samples = np.zeros((4, 4), dtype=np.uint16)
    samples[2, 1] = 65535
    return PlaneSumTable.from_samples(samples)


@pytest.fixture
def random_volume(rng):
    """Объём из трёх случайных кадров 5x6 и сами кадры (Z, H, W)"""
    stack = rng.integers(0, 65536, size=(3, 5, 6), dtype=np.uint16)
    table = VolumeSumTable.empty(6, 5, 3)
    for frame in stack:
        assert table.append_frame(frame)
    return table, stack
