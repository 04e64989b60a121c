"""
Таблица объёмных сумм (summed-volume table) с дописываемой осью кадров
"""
import numpy as np
from typing import Optional, Tuple
import logging

from .structures import Rect
from .sumtable import check_capacity, _as_samples
from ..config import DENSITY_MAX

logger = logging.getLogger(__name__)


class VolumeSumTable:
    """
    Трёхмерная таблица префиксных сумм

    Ось Z - номер кадра. Ёмкость cap_z фиксируется при создании,
    кадры только дописываются в конец: len_z <= cap_z.
    prefix_at(x, y, z) = сумма плотности по x' <= x, y' <= y, z' <= z.
    """
    ndim = 3

    def __init__(self, rect: Rect, cap_z: int):
        """
        Args:
            rect: Границы кадра по X и Y
            cap_z: Максимальное число кадров

        Raises:
            ValueError: При cap_z <= 0 или возможном переполнении
        """
        if cap_z <= 0:
            raise ValueError(f"Frame capacity must be positive, got {cap_z}")
        check_capacity(rect.area() * cap_z)

        self.rect = rect
        self.cap_z = int(cap_z)
        self.len_z = 0
        self.values = np.zeros((self.cap_z, rect.height, rect.width), dtype=np.uint64)

    @classmethod
    def empty(cls,
              width: int,
              height: int,
              cap_z: int,
              origin: Tuple[int, int] = (0, 0)) -> 'VolumeSumTable':
        """Пустая таблица без кадров"""
        return cls(Rect.from_size(width, height, origin), cap_z)

    @classmethod
    def from_frame(cls,
                   samples: np.ndarray,
                   cap_z: int,
                   origin: Tuple[int, int] = (0, 0)) -> 'VolumeSumTable':
        """Таблица с первым кадром; границы берутся по кадру"""
        h, w = np.shape(samples)[:2]
        table = cls.empty(w, h, cap_z, origin)
        table.append_frame(samples, origin)
        return table

    @property
    def width(self) -> int:
        return self.rect.width

    @property
    def height(self) -> int:
        return self.rect.height

    def is_full(self) -> bool:
        return self.len_z >= self.cap_z

    def bounds(self) -> Rect:
        return self.rect

    def append_frame(self, samples: np.ndarray, origin: Tuple[int, int] = (0, 0)) -> bool:
        """
        Дописывание кадра

        Кадр, частично выходящий за Rect, обрезается. Кадр без
        пересечения с Rect дописывается как кадр нулевой плотности,
        чтобы номера кадров не сдвигались.

        Returns:
            False, если таблица заполнена (кадр отброшен)
        """
        if self.is_full():
            logger.warning(f"Volume table is full ({self.cap_z} frames), frame rejected")
            return False

        arr = _as_samples(samples)
        frame_rect = Rect.from_size(arr.shape[1], arr.shape[0], origin)
        overlap = frame_rect.intersect(self.rect)

        plane = np.zeros((self.rect.height, self.rect.width), dtype=np.uint64)
        if overlap.empty():
            logger.debug(f"Frame at {origin} does not overlap {self.rect}, appending zero frame")
        else:
            src = arr[overlap.ymin - frame_rect.ymin:overlap.ymax - frame_rect.ymin,
                      overlap.xmin - frame_rect.xmin:overlap.xmax - frame_rect.xmin]
            plane[overlap.ymin - self.rect.ymin:overlap.ymax - self.rect.ymin,
                  overlap.xmin - self.rect.xmin:overlap.xmax - self.rect.xmin] = src
            if overlap != frame_rect:
                logger.debug(f"Frame {frame_rect} clipped to {overlap}")

        z = self.len_z
        layer = plane.cumsum(axis=1, dtype=np.uint64).cumsum(axis=0, dtype=np.uint64)
        if z > 0:
            layer += self.values[z - 1]
        self.values[z] = layer
        self.len_z = z + 1

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Appended frame {z}: mass={int(plane.sum())}")
        return True

    def prefix_at(self, x: int, y: int, z: int) -> int:
        """Префиксная сумма; вне границ (или за len_z) - 0"""
        if self.rect.contains(x, y) and 0 <= z < self.len_z:
            return int(self.values[z, y - self.rect.ymin, x - self.rect.xmin])
        return 0

    def neg_prefix_at(self, x: int, y: int, z: int) -> int:
        """Префиксная сумма дополнительной плотности"""
        if not (self.rect.contains(x, y) and 0 <= z < self.len_z):
            return 0
        volume = (x + 1 - self.rect.xmin) * (y + 1 - self.rect.ymin) * (z + 1)
        return volume * DENSITY_MAX - self.prefix_at(x, y, z)

    def _clip(self, r: Rect, zmin: int, zmax: int) -> Tuple[Rect, int, int]:
        return r.intersect(self.rect), max(0, zmin), min(zmax, self.len_z)

    def range_mass(self, r: Rect, zmin: int = 0, zmax: Optional[int] = None) -> int:
        """
        Масса параллелепипеда r x [zmin, zmax)

        zmax ограничивается числом загруженных кадров.
        """
        if zmax is None:
            zmax = self.len_z
        r, zmin, zmax = self._clip(r, zmin, zmax)
        if r.empty() or zmax <= zmin:
            return 0

        p = self.prefix_at
        x0, x1 = r.xmin - 1, r.xmax - 1
        y0, y1 = r.ymin - 1, r.ymax - 1
        z0, z1 = zmin - 1, zmax - 1

        upper = p(x1, y1, z1) - p(x0, y1, z1) - p(x1, y0, z1) + p(x0, y0, z1)
        lower = p(x1, y1, z0) - p(x0, y1, z0) - p(x1, y0, z0) + p(x0, y0, z0)
        return upper - lower

    def neg_range_mass(self, r: Rect, zmin: int = 0, zmax: Optional[int] = None) -> int:
        if zmax is None:
            zmax = self.len_z
        r, zmin, zmax = self._clip(r, zmin, zmax)
        if r.empty() or zmax <= zmin:
            return 0
        return r.area() * (zmax - zmin) * DENSITY_MAX - self.range_mass(r, zmin, zmax)

    def total_mass(self) -> int:
        return self.range_mass(self.rect, 0, self.len_z)

    def value_at(self, x: int, y: int, z: Optional[int] = None) -> int:
        """Плотность вокселя; по умолчанию берётся последний кадр"""
        if z is None:
            z = self.len_z - 1
        return self.range_mass(Rect(x, y, x + 1, y + 1), z, z + 1)

    def frame_samples(self, z: int) -> np.ndarray:
        """Восстановление отсчётов кадра z (H, W) uint16"""
        if not 0 <= z < self.len_z:
            raise IndexError(f"Frame {z} out of range 0..{self.len_z - 1}")
        layer = self.values[z]
        if z > 0:
            layer = layer - self.values[z - 1]
        d = np.diff(layer, axis=0, prepend=np.uint64(0))
        d = np.diff(d, axis=1, prepend=np.uint64(0))
        return d.astype(np.uint16)
