"""
Таблицы префиксных сумм плотности (summed-area tables)

PlaneSumTable хранит двойные суммы: значение в (x, y) - масса
прямоугольника от угла Rect до (x, y) включительно. AxisSumTable
хранит суммы вдоль одной оси (строки или столбцы). Обе таблицы
строятся на одной базе, которая различает только порядок обхода
хранилища: строки подряд ('xy') или столбцы подряд ('yx').
"""
import numpy as np
from typing import Tuple
import logging

from .structures import Rect
from ..config import DENSITY_MAX, UINT64_MAX

logger = logging.getLogger(__name__)


def check_capacity(n_samples: int) -> None:
    """
    Проверка, что сумма n_samples отсчётов помещается в 64 бита

    Raises:
        ValueError: Если возможно переполнение аккумулятора
    """
    if n_samples * DENSITY_MAX > UINT64_MAX:
        raise ValueError(
            f"{n_samples} samples of up to {DENSITY_MAX} may overflow 64-bit accumulators"
        )


def _as_samples(samples: np.ndarray) -> np.ndarray:
    """Проверка и приведение 2D массива отсчётов"""
    arr = np.asarray(samples)
    if arr.ndim != 2:
        raise ValueError(f"Density samples must be 2D (H, W), got shape {arr.shape}")
    if arr.size and (arr.min() < 0 or arr.max() > DENSITY_MAX):
        raise ValueError(f"Density samples must lie in 0..{DENSITY_MAX}")
    return arr.astype(np.uint64)


class SumTableBase:
    """
    Общая база таблиц сумм

    Attributes:
        rect: Границы таблицы
        values: Хранилище uint64
        order: 'xy' - values[y, x] (строки подряд), 'yx' - values[x, y]
    """
    ndim = 2

    def __init__(self, rect: Rect, values: np.ndarray, order: str = 'xy'):
        if order not in ('xy', 'yx'):
            raise ValueError(f"Unknown storage order: {order!r}")
        expected = (rect.height, rect.width) if order == 'xy' else (rect.width, rect.height)
        if values.shape != expected:
            raise ValueError(f"Values shape {values.shape} does not match {rect} in order {order!r}")
        check_capacity(rect.area())

        self.rect = rect
        self.values = values
        self.order = order

    @property
    def width(self) -> int:
        return self.rect.width

    @property
    def height(self) -> int:
        return self.rect.height

    def bounds(self) -> Rect:
        return self.rect

    def _index(self, x: int, y: int) -> Tuple[int, int]:
        if self.order == 'xy':
            return y - self.rect.ymin, x - self.rect.xmin
        return x - self.rect.xmin, y - self.rect.ymin

    def _raw(self, x: int, y: int) -> int:
        """Значение хранилища в (x, y); вне границ - 0"""
        if self.rect.contains(x, y):
            return int(self.values[self._index(x, y)])
        return 0


class PlaneSumTable(SumTableBase):
    """
    Таблица площадных сумм

    prefix_at(x, y) = сумма плотности по всем x' <= x, y' <= y внутри Rect.
    Точечные запросы вне Rect возвращают 0 - это часть контракта,
    поэтому range_mass всегда сначала пересекает запрос с Rect.
    """

    def __init__(self, rect: Rect, values: np.ndarray):
        super().__init__(rect, values, order='xy')

    @classmethod
    def from_samples(cls, samples: np.ndarray, origin: Tuple[int, int] = (0, 0)) -> 'PlaneSumTable':
        """
        Построение таблицы за один проход O(w*h)

        Args:
            samples: Отсчёты плотности (H, W)
            origin: Координаты левого верхнего пикселя
        """
        arr = _as_samples(samples)
        h, w = arr.shape
        check_capacity(w * h)
        values = arr.cumsum(axis=1, dtype=np.uint64).cumsum(axis=0, dtype=np.uint64)
        rect = Rect.from_size(w, h, origin)

        if logger.isEnabledFor(logging.DEBUG):
            total = int(values[-1, -1]) if values.size else 0
            logger.debug(f"PlaneSumTable built: {w}x{h} at {origin}, mass={total}")

        return cls(rect, values)

    @classmethod
    def from_image(cls, image: np.ndarray, model, origin: Tuple[int, int] = (0, 0)) -> 'PlaneSumTable':
        """Таблица по изображению и модели плотности"""
        from ..utils.density import density_from_image  # локальный импорт, не создаёт цикл
        return cls.from_samples(density_from_image(image, model), origin)

    @classmethod
    def empty(cls, width: int, height: int, origin: Tuple[int, int] = (0, 0)) -> 'PlaneSumTable':
        """Таблица нулевой плотности"""
        return cls(Rect.from_size(width, height, origin), np.zeros((height, width), dtype=np.uint64))

    def prefix_at(self, x: int, y: int) -> int:
        """Префиксная сумма в (x, y); вне границ - 0"""
        return self._raw(x, y)

    def neg_prefix_at(self, x: int, y: int) -> int:
        """Префиксная сумма дополнительной плотности (65535 - d)"""
        if not self.rect.contains(x, y):
            return 0
        area = (x + 1 - self.rect.xmin) * (y + 1 - self.rect.ymin)
        return area * DENSITY_MAX - self._raw(x, y)

    def range_mass(self, r: Rect) -> int:
        """Масса прямоугольника r (Max исключительно)"""
        r = r.intersect(self.rect)
        if r.empty():
            return 0
        p = self.prefix_at
        return (p(r.xmax - 1, r.ymax - 1) + p(r.xmin - 1, r.ymin - 1)
                - p(r.xmin - 1, r.ymax - 1) - p(r.xmax - 1, r.ymin - 1))

    def neg_range_mass(self, r: Rect) -> int:
        """Масса дополнительной плотности: площадь * 65535 - масса"""
        r = r.intersect(self.rect)
        return r.area() * DENSITY_MAX - self.range_mass(r)

    def total_mass(self) -> int:
        return self.range_mass(self.rect)

    def value_at(self, x: int, y: int) -> int:
        """Плотность пикселя (x, y); вне границ - 0"""
        if not self.rect.contains(x, y):
            return 0
        p = self.prefix_at
        return p(x, y) - p(x - 1, y) - p(x, y - 1) + p(x - 1, y - 1)

    def line_mass(self, axis: int, line: int, lo: int, hi: int, negated: bool = False) -> int:
        """Масса одной строки (axis=0) или столбца (axis=1) на отрезке [lo, hi)"""
        if axis == 0:
            r = Rect(lo, line, hi, line + 1)
        else:
            r = Rect(line, lo, line + 1, hi)
        return self.neg_range_mass(r) if negated else self.range_mass(r)

    def samples(self) -> np.ndarray:
        """Восстановление отсчётов плотности (H, W) uint16"""
        d = np.diff(self.values, axis=0, prepend=np.uint64(0))
        d = np.diff(d, axis=1, prepend=np.uint64(0))
        return d.astype(np.uint16)

    def update(self, x: int, y: int, v: int) -> None:
        """
        Изменение плотности одного пикселя

        Медленная операция: обновляется вся область от (x, y)
        до правого нижнего угла, O(w*h).
        """
        if not self.rect.contains(x, y):
            return
        if not 0 <= v <= DENSITY_MAX:
            raise ValueError(f"Density must lie in 0..{DENSITY_MAX}, got {v}")

        delta = int(v) - self.value_at(x, y)
        if delta == 0:
            return
        row, col = self._index(x, y)
        if delta > 0:
            self.values[row:, col:] += np.uint64(delta)
        else:
            self.values[row:, col:] -= np.uint64(-delta)


class AxisSumTable(SumTableBase):
    """
    Таблица сумм вдоль одной оси

    axis=0: значение в (x, y) - сумма строки y от Rect.xmin до x.
    axis=1: сумма столбца x от Rect.ymin до y; хранится
    транспонированно, чтобы столбец лежал в памяти подряд.
    """

    def __init__(self, rect: Rect, values: np.ndarray, axis: int = 0):
        if axis not in (0, 1):
            raise ValueError(f"Axis must be 0 or 1, got {axis}")
        super().__init__(rect, values, order='xy' if axis == 0 else 'yx')
        self.axis = axis

    @classmethod
    def from_samples(cls,
                     samples: np.ndarray,
                     axis: int = 0,
                     origin: Tuple[int, int] = (0, 0)) -> 'AxisSumTable':
        arr = _as_samples(samples)
        h, w = arr.shape
        if axis == 0:
            values = arr.cumsum(axis=1, dtype=np.uint64)
        else:
            values = np.ascontiguousarray(arr.T).cumsum(axis=1, dtype=np.uint64)
        return cls(Rect.from_size(w, h, origin), values, axis)

    def prefix_at(self, x: int, y: int) -> int:
        return self._raw(x, y)

    def value_at(self, x: int, y: int) -> int:
        if not self.rect.contains(x, y):
            return 0
        if self.axis == 0:
            return self._raw(x, y) - self._raw(x - 1, y)
        return self._raw(x, y) - self._raw(x, y - 1)

    def line_mass(self, axis: int, line: int, lo: int, hi: int, negated: bool = False) -> int:
        """Масса отрезка [lo, hi) одной линии вдоль оси таблицы, O(1)"""
        if axis != self.axis:
            raise ValueError(f"Table sums along axis {self.axis}, cannot answer axis {axis}")

        lo = max(lo, self.rect.lo(axis))
        hi = min(hi, self.rect.hi(axis))
        cross = 1 - axis
        if hi <= lo or not self.rect.lo(cross) <= line < self.rect.hi(cross):
            return 0

        if axis == 0:
            mass = self._raw(hi - 1, line) - self._raw(lo - 1, line)
        else:
            mass = self._raw(line, hi - 1) - self._raw(line, lo - 1)
        return (hi - lo) * DENSITY_MAX - mass if negated else mass

    def range_mass(self, r: Rect) -> int:
        """Масса прямоугольника: O(число линий)"""
        r = r.intersect(self.rect)
        if r.empty():
            return 0
        cross = 1 - self.axis
        return sum(self.line_mass(self.axis, line, r.lo(self.axis), r.hi(self.axis))
                   for line in range(r.lo(cross), r.hi(cross)))
