"""
Поиск линии центра масс (centroid line) двоичным делением

Для области и оси ищется координата разреза c из [lo, hi], при которой
массы частей [lo, c) и [c, hi) отличаются меньше всего. Значения на
неподвижной грани области кэшируются, на каждом шаге заново
запрашивается только подвижная грань: 2 префикса в 2D, 4 в 3D.
"""
from itertools import product
from typing import Callable, List, Optional, Tuple
import logging

from .structures import Rect

logger = logging.getLogger(__name__)


def _region_bounds(table, rect: Rect, zrange: Optional[Tuple[int, int]]) -> Tuple[List[int], List[int]]:
    """Границы области, обрезанные по таблице: (lows, highs) по осям x, y[, z]"""
    r = rect.intersect(table.rect)
    lows, highs = [r.xmin, r.ymin], [r.xmax, r.ymax]
    if table.ndim == 3:
        zmin, zmax = zrange if zrange is not None else (0, table.len_z)
        lows.append(max(0, zmin))
        highs.append(min(zmax, table.len_z))
    return lows, highs


def _face_function(prefix: Callable[..., int],
                   axis: int,
                   lows: List[int],
                   highs: List[int]) -> Callable[[int], int]:
    """
    Масса слоя области от нижней границы таблицы по оси axis до t включительно

    Остальные оси ограничены областью через включение-исключение.
    """
    others = [a for a in range(len(lows)) if a != axis]
    corners = []
    for choice in product((0, 1), repeat=len(others)):
        sign = -1 if sum(choice) % 2 else 1
        coords = [0] * len(lows)
        for a, use_low in zip(others, choice):
            coords[a] = lows[a] - 1 if use_low else highs[a] - 1
        corners.append((sign, coords))

    def face(t: int) -> int:
        total = 0
        for sign, coords in corners:
            coords[axis] = t
            total += sign * prefix(*coords)
        return total

    return face


def _bisect_balance(lo: int, hi: int, total: int, left_mass: Callable[[int], int]) -> int:
    """
    Двоичный поиск разреза с наилучшим балансом масс

    Инвариант: 2 * left(a) < total <= 2 * left(b). При равенстве
    дисбаланса двух последних кандидатов выбирается верхний.
    """
    a, b = lo, hi
    left_a, left_b = 0, total
    while b - a > 1:
        mid = (a + b + 1) // 2
        left = left_mass(mid)
        if 2 * left < total:
            a, left_a = mid, left
        else:
            b, left_b = mid, left

    if abs(2 * left_b - total) <= abs(2 * left_a - total):
        return b
    return a


def find_center(table,
                rect: Rect,
                axis: int,
                zrange: Optional[Tuple[int, int]] = None,
                negated: bool = False,
                mask=None) -> int:
    """
    Координата линии центра масс области по оси

    Args:
        table: PlaneSumTable или VolumeSumTable
        rect: Область по X и Y
        axis: 0 - X, 1 - Y, 2 - Z (только для объёма)
        zrange: Диапазон кадров [zmin, zmax) для объёма
        negated: Искать по дополнительной плотности (антиполюс)
        mask: Необязательная RegionMask (только для плоскости)

    Returns:
        Координата c из [lo, hi]; для пустой области или нулевой массы - lo
    """
    if axis >= table.ndim:
        raise ValueError(f"Axis {axis} is not available for a {table.ndim}D table")

    if axis == 2:
        lo, hi = zrange if zrange is not None else (0, table.len_z)
    else:
        lo, hi = rect.lo(axis), rect.hi(axis)

    if mask is not None:
        return _find_masked_center(table, rect, axis, negated, mask, lo)

    lows, highs = _region_bounds(table, rect, zrange)
    if any(h <= l for l, h in zip(lows, highs)):
        return lo

    prefix = table.neg_prefix_at if negated else table.prefix_at
    face = _face_function(prefix, axis, lows, highs)

    fixed = face(lows[axis] - 1)
    total = face(highs[axis] - 1) - fixed
    if total == 0:
        return lo

    c = _bisect_balance(lows[axis], highs[axis], total, lambda t: face(t - 1) - fixed)

    if logger.isEnabledFor(logging.DEBUG):
        kind = 'antipole' if negated else 'pole'
        logger.debug(f"    {kind} axis={axis} range=[{lows[axis]}, {highs[axis]}] -> {c} (mass={total})")
    return c


def _find_masked_center(table, rect: Rect, axis: int, negated: bool, mask, lo: int) -> int:
    """Поиск центра под маской: масса части считается через RegionMask.apply_to"""
    if table.ndim != 2:
        raise ValueError("Masked centroid search supports only plane tables")

    r = rect.intersect(mask.rect)
    if r.empty():
        return lo

    total = mask.apply_to(table, r, negated=negated).weighted_mass
    if total == 0:
        return lo

    def left_mass(c: int) -> int:
        return mask.apply_to(table, r.with_axis(axis, r.lo(axis), c), negated=negated).weighted_mass

    return _bisect_balance(r.lo(axis), r.hi(axis), total, left_mass)


def find_cx(table, rect: Rect, zrange=None, mask=None) -> int:
    return find_center(table, rect, 0, zrange, False, mask)


def find_cy(table, rect: Rect, zrange=None, mask=None) -> int:
    return find_center(table, rect, 1, zrange, False, mask)


def find_cz(table, rect: Rect, zrange=None) -> int:
    return find_center(table, rect, 2, zrange, False)


def find_neg_cx(table, rect: Rect, zrange=None, mask=None) -> int:
    return find_center(table, rect, 0, zrange, True, mask)


def find_neg_cy(table, rect: Rect, zrange=None, mask=None) -> int:
    return find_center(table, rect, 1, zrange, True, mask)


def find_neg_cz(table, rect: Rect, zrange=None) -> int:
    return find_center(table, rect, 2, zrange, True)
