"""
Маска покрытия области: построчное RLE-представление дробных весов

Каждая линия маски (строка при axis=0, столбец при axis=1) - это
упорядоченная последовательность отрезков MaskRun(weight, end).
Отрезок начинается там, где закончился предыдущий (первый - на
нижней границе линии), и заканчивается в end (исключительно).
Вес 0..65535: 0 - пиксель не покрыт, 65535 - покрыт полностью.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple
import math
import logging

from .structures import Rect
from ..config import DENSITY_MAX, DENSITY_HALF

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaskRun:
    """Отрезок линии маски с постоянным весом"""
    weight: int
    end: int


@dataclass(frozen=True)
class MaskAggregate:
    """
    Взвешенные суммы маски по таблице

    Все величины - точные целые, умноженные на масштаб маски (65535).
    """
    weighted_mass: int
    weighted_moment: int
    weighted_area: int
    scale: int = DENSITY_MAX

    @property
    def mass(self) -> int:
        return self.weighted_mass // self.scale

    @property
    def area(self) -> int:
        return self.weighted_area // self.scale

    @property
    def cross_centroid(self) -> Optional[float]:
        """Центр масс по поперечной оси (номер линии)"""
        if self.weighted_mass == 0:
            return None
        return self.weighted_moment / self.weighted_mass

    def mean_value(self) -> int:
        """Средняя плотность под маской"""
        if self.weighted_area == 0:
            return 0
        return self.weighted_mass // self.weighted_area


Line = Tuple[MaskRun, ...]


def _compress(segments: Sequence[Tuple[int, int, int]]) -> Line:
    """Отрезки (weight, start, end) -> MaskRun с объединением равных весов"""
    out: List[MaskRun] = []
    for weight, start, end in segments:
        if end <= start:
            continue
        if out and out[-1].weight == weight:
            out[-1] = MaskRun(weight, end)
        else:
            out.append(MaskRun(weight, end))
    return tuple(out)


def _fraction_weight(frac: float) -> int:
    return int(round(min(1.0, max(0.0, frac)) * DENSITY_MAX))


class RegionMask:
    """
    Маска покрытия прямоугольной области

    Attributes:
        rect: Область маски
        axis: 0 - линии вдоль X (по одной на строку), 1 - вдоль Y
        lines: Отрезки каждой линии, индекс = координата линии - rect.lo(1 - axis)
    """
    scale = DENSITY_MAX

    def __init__(self, rect: Rect, axis: int, lines: Sequence[Line]):
        if axis not in (0, 1):
            raise ValueError(f"Mask axis must be 0 or 1, got {axis}")
        self.rect = rect
        self.axis = axis
        self.lines: List[Line] = [tuple(line) for line in lines]

    def __repr__(self) -> str:
        n_runs = sum(len(line) for line in self.lines)
        return f"RegionMask({self.rect}, axis={self.axis}, runs={n_runs})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, RegionMask):
            return NotImplemented
        return self.rect == other.rect and self.axis == other.axis and self.lines == other.lines

    # ======== Конструкторы ========

    @classmethod
    def full(cls, rect: Rect, axis: int = 0) -> 'RegionMask':
        """Полное покрытие: один отрезок веса 65535 на линию"""
        lo, hi = rect.lo(axis), rect.hi(axis)
        cross = 1 - axis
        line = (MaskRun(DENSITY_MAX, hi),) if hi > lo else ()
        return cls(rect, axis, [line] * max(0, rect.hi(cross) - rect.lo(cross)))

    @classmethod
    def from_runs(cls, rect: Rect, axis: int, lines) -> 'RegionMask':
        """
        Маска из явных отрезков с проверкой

        Args:
            rect: Область маски
            axis: Ось линий
            lines: Для каждой линии - последовательность MaskRun или пар (weight, end)

        Raises:
            ValueError: При несогласованных отрезках
        """
        if axis not in (0, 1):
            raise ValueError(f"Mask axis must be 0 or 1, got {axis}")

        lo, hi = rect.lo(axis), rect.hi(axis)
        cross = 1 - axis
        n_lines = max(0, rect.hi(cross) - rect.lo(cross))
        lines = list(lines)
        if len(lines) != n_lines:
            raise ValueError(f"Mask over {rect} needs {n_lines} lines, got {len(lines)}")

        checked = []
        for i, line in enumerate(lines):
            runs = [r if isinstance(r, MaskRun) else MaskRun(int(r[0]), int(r[1])) for r in line]
            if hi <= lo:
                if runs:
                    raise ValueError(f"Line {i} of an empty mask must have no runs")
                checked.append(())
                continue
            if not runs:
                raise ValueError(f"Line {i} has no runs")

            start = lo
            segments = []
            for run in runs:
                if not 0 <= run.weight <= DENSITY_MAX:
                    raise ValueError(f"Line {i}: weight {run.weight} outside 0..{DENSITY_MAX}")
                if run.end <= start:
                    raise ValueError(f"Line {i}: breakpoints must increase strictly ({run.end} after {start})")
                if run.end > hi:
                    raise ValueError(f"Line {i}: breakpoint {run.end} past line end {hi}")
                segments.append((run.weight, start, run.end))
                start = run.end
            if start != hi:
                raise ValueError(f"Line {i}: last breakpoint {start} must equal line end {hi}")
            checked.append(_compress(segments))

        return cls(rect, axis, checked)

    @classmethod
    def half_plane(cls,
                   rect: Rect,
                   axis: int,
                   point: Tuple[float, float],
                   normal: Tuple[float, float]) -> 'RegionMask':
        """
        Маска полуплоскости

        Покрыта сторона, в которую направлена нормаль. Пиксель, через
        который проходит граница, получает дробный вес по доле покрытия
        вдоль оси линий.

        Args:
            point: Точка на границе (x, y) в пиксельных координатах
            normal: Нормаль к границе (nx, ny)
        """
        if normal[0] == 0 and normal[1] == 0:
            raise ValueError("Half-plane normal must be non-zero")

        lo, hi = rect.lo(axis), rect.hi(axis)
        cross = 1 - axis
        p_a, p_c = point[axis], point[cross]
        n_a, n_c = normal[axis], normal[cross]

        lines = []
        for c in range(rect.lo(cross), rect.hi(cross)):
            if hi <= lo:
                lines.append(())
                continue

            if n_a == 0:
                # Граница параллельна линии: вся линия имеет один вес
                frac = (c + 1 - p_c) if n_c > 0 else (p_c - c)
                lines.append(_compress([(_fraction_weight(frac), lo, hi)]))
                continue

            t = p_a - (c + 0.5 - p_c) * n_c / n_a
            k = math.floor(t)
            k0, k1 = min(max(k, lo), hi), min(max(k + 1, lo), hi)
            if n_a > 0:
                segments = [(0, lo, k0), (_fraction_weight(k + 1 - t), k0, k1), (DENSITY_MAX, k1, hi)]
            else:
                segments = [(DENSITY_MAX, lo, k0), (_fraction_weight(t - k), k0, k1), (0, k1, hi)]
            lines.append(_compress(segments))

        return cls(rect, axis, lines)

    # ======== Запросы ========

    def line_bounds(self) -> Tuple[int, int]:
        return self.rect.lo(self.axis), self.rect.hi(self.axis)

    def runs(self, line: int) -> Iterator[Tuple[int, int, int]]:
        """
        Отрезки линии в виде (start, end, weight)

        Каждый вызов создаёт новый итератор, обход можно начинать заново.
        """
        cross = 1 - self.axis
        i = line - self.rect.lo(cross)
        if not 0 <= i < len(self.lines):
            return
        start = self.rect.lo(self.axis)
        for run in self.lines[i]:
            yield start, run.end, run.weight
            start = run.end

    def coverage_at(self, x: int, y: int) -> int:
        """Вес маски в пикселе; вне области - 0"""
        if not self.rect.contains(x, y):
            return 0
        along, line = (x, y) if self.axis == 0 else (y, x)
        for start, end, weight in self.runs(line):
            if along < end:
                return weight
        return 0

    # ======== Операции ========

    def intersect(self, other: 'RegionMask') -> 'RegionMask':
        """
        Пересечение масок слиянием точек разрыва

        Новый вес - round(wa * wb / 65535). Обе маски должны иметь
        одинаковые область и ось.
        """
        if self.rect != other.rect or self.axis != other.axis:
            raise ValueError(
                f"Cannot intersect masks over {self.rect}/axis {self.axis} "
                f"and {other.rect}/axis {other.axis}"
            )

        lo, hi = self.line_bounds()
        lines = []
        for a, b in zip(self.lines, other.lines):
            i = j = 0
            start = lo
            segments = []
            while i < len(a) and j < len(b):
                end = min(a[i].end, b[j].end)
                if end > hi:
                    break
                weight = (a[i].weight * b[j].weight + DENSITY_HALF) // DENSITY_MAX
                segments.append((weight, start, end))
                start = end
                if a[i].end == end:
                    i += 1
                if b[j].end == end:
                    j += 1
            lines.append(_compress(segments))

        return RegionMask(self.rect, self.axis, lines)

    def clip(self, rect: Rect) -> 'RegionMask':
        """Маска, ограниченная подобластью rect"""
        new_rect = self.rect.intersect(rect)
        if new_rect.empty():
            return RegionMask(new_rect, self.axis, [])

        cross = 1 - self.axis
        lo, hi = new_rect.lo(self.axis), new_rect.hi(self.axis)
        lines = []
        for line in range(new_rect.lo(cross), new_rect.hi(cross)):
            segments = [(w, max(s, lo), min(e, hi)) for s, e, w in self.runs(line) if e > lo and s < hi]
            lines.append(_compress(segments))

        return RegionMask(new_rect, self.axis, lines)

    def apply_to(self, table, rect: Optional[Rect] = None, negated: bool = False) -> MaskAggregate:
        """
        Взвешенные суммы плотности под маской

        Args:
            table: Таблица с методом line_mass(axis, line, lo, hi, negated)
            rect: Необязательное ограничение области
            negated: Использовать дополнительную плотность

        Returns:
            MaskAggregate с массой, моментом по поперечной оси и площадью
        """
        r = self.rect if rect is None else self.rect.intersect(rect)
        if r.empty():
            return MaskAggregate(0, 0, 0)

        cross = 1 - self.axis
        lo, hi = r.lo(self.axis), r.hi(self.axis)
        w_mass = w_moment = w_area = 0

        for line in range(r.lo(cross), r.hi(cross)):
            for start, end, weight in self.runs(line):
                if end <= lo:
                    continue
                if start >= hi:
                    break
                if weight == 0:
                    continue
                s, e = max(start, lo), min(end, hi)
                m = weight * table.line_mass(self.axis, line, s, e, negated)
                w_mass += m
                w_moment += m * line
                w_area += weight * (e - s)

        return MaskAggregate(w_mass, w_moment, w_area)
