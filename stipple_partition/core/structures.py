from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class Rect:
    """
    Прямоугольник в целочисленной сетке пикселей

    Attributes:
        xmin, ymin: Минимальные координаты (включительно)
        xmax, ymax: Максимальные координаты (исключительно)
    """
    xmin: int
    ymin: int
    xmax: int
    ymax: int

    def __post_init__(self):
        """Приведение координат к int"""
        for name in ('xmin', 'ymin', 'xmax', 'ymax'):
            object.__setattr__(self, name, int(getattr(self, name)))

    @classmethod
    def from_size(cls, width: int, height: int, origin: Tuple[int, int] = (0, 0)) -> 'Rect':
        x0, y0 = origin
        return cls(x0, y0, x0 + width, y0 + height)

    @property
    def width(self) -> int:
        return max(0, self.xmax - self.xmin)

    @property
    def height(self) -> int:
        return max(0, self.ymax - self.ymin)

    def area(self) -> int:
        """Площадь в пикселях (0 для пустого)"""
        return self.width * self.height

    def empty(self) -> bool:
        return self.xmax <= self.xmin or self.ymax <= self.ymin

    def lo(self, axis: int) -> int:
        return self.xmin if axis == 0 else self.ymin

    def hi(self, axis: int) -> int:
        return self.xmax if axis == 0 else self.ymax

    def intersect(self, other: 'Rect') -> 'Rect':
        """Пересечение; пустой результат нормализуется к нулевому прямоугольнику"""
        r = Rect(max(self.xmin, other.xmin), max(self.ymin, other.ymin),
                 min(self.xmax, other.xmax), min(self.ymax, other.ymax))
        if r.empty():
            return Rect(0, 0, 0, 0)
        return r

    def contains(self, x: int, y: int) -> bool:
        return self.xmin <= x < self.xmax and self.ymin <= y < self.ymax

    def with_axis(self, axis: int, lo: int, hi: int) -> 'Rect':
        """Копия с заменой границ по одной оси"""
        if axis == 0:
            return replace(self, xmin=lo, xmax=hi)
        return replace(self, ymin=lo, ymax=hi)

    def split(self, axis: int, at: int) -> Tuple['Rect', 'Rect']:
        """Разрез по оси: [lo, at) и [at, hi)"""
        return (self.with_axis(axis, self.lo(axis), at),
                self.with_axis(axis, at, self.hi(axis)))

    def to_list(self) -> List[int]:
        return [self.xmin, self.ymin, self.xmax, self.ymax]


@dataclass
class Cell:
    """
    Ячейка дерева разбиения

    Ячейка не владеет таблицей-источником: все ячейки одного дерева
    ссылаются на одну и ту же таблицу, меняются только границы запроса.

    Attributes:
        source: Таблица сумм (PlaneSumTable или VolumeSumTable)
        rect: Границы по X и Y
        zmin, zmax: Диапазон кадров (только для объёма)
        mask: Необязательная маска покрытия (только для плоскости)
        value: Кэш средней плотности
        level: Число разрезов, пройденных ячейкой
    """
    source: Any
    rect: Rect
    zmin: int = 0
    zmax: int = 0
    mask: Optional[Any] = None
    value: Optional[int] = None
    level: int = 0

    @property
    def ndim(self) -> int:
        return self.source.ndim

    def axes(self) -> Tuple[int, ...]:
        return tuple(range(self.ndim))

    def lo(self, axis: int) -> int:
        return self.zmin if axis == 2 else self.rect.lo(axis)

    def hi(self, axis: int) -> int:
        return self.zmax if axis == 2 else self.rect.hi(axis)

    def extent(self, axis: int) -> int:
        return max(0, self.hi(axis) - self.lo(axis))

    def zrange(self) -> Optional[Tuple[int, int]]:
        return (self.zmin, self.zmax) if self.ndim == 3 else None

    def volume(self) -> int:
        """Число пикселей (вокселей) ячейки"""
        if self.ndim == 3:
            return self.rect.area() * max(0, self.zmax - self.zmin)
        return self.rect.area()

    def masked_aggregate(self, negated: bool = False):
        """Агрегат маски по границам ячейки"""
        return self.mask.apply_to(self.source, self.rect, negated=negated)

    @property
    def mass_scale(self) -> int:
        """Множитель массы: 65535 для ячейки с маской, иначе 1"""
        return self.mask.scale if self.mask is not None else 1

    def mass(self) -> int:
        """
        Масса ячейки

        Для ячейки с маской возвращается точная взвешенная масса,
        умноженная на mass_scale. Сумма масс двух половин после
        разреза равна массе исходной ячейки.
        """
        if self.mask is not None:
            return self.masked_aggregate().weighted_mass
        if self.ndim == 3:
            return self.source.range_mass(self.rect, self.zmin, self.zmax)
        return self.source.range_mass(self.rect)

    def neg_mass(self) -> int:
        """Масса дополнительной (негативной) плотности, в тех же единицах, что mass"""
        if self.mask is not None:
            return self.masked_aggregate(negated=True).weighted_mass
        if self.ndim == 3:
            return self.source.neg_range_mass(self.rect, self.zmin, self.zmax)
        return self.source.neg_range_mass(self.rect)

    def calc_value(self) -> int:
        """Вычисление и кэширование средней плотности"""
        if self.mask is not None:
            agg = self.masked_aggregate()
            self.value = agg.mean_value()
        else:
            volume = self.volume()
            self.value = self.mass() // volume if volume else 0
        return self.value

    def bisect(self, axis: int, at: int) -> 'Cell':
        """
        Разрез ячейки по оси

        Ячейка сжимается до нижней половины [lo, at), а верхняя
        половина [at, hi) возвращается как новая ячейка-сосед.

        Raises:
            ValueError: Если разрез дал бы пустую половину
        """
        lo, hi = self.lo(axis), self.hi(axis)
        if not lo < at < hi:
            raise ValueError(f"Cut {at} on axis {axis} must lie strictly inside ({lo}, {hi})")

        sibling = Cell(self.source, self.rect, self.zmin, self.zmax, None, None, self.level + 1)
        if axis == 2:
            self.zmax = at
            sibling.zmin = at
        else:
            self.rect, sibling.rect = self.rect.split(axis, at)

        if self.mask is not None:
            sibling.mask = self.mask.clip(sibling.rect)
            self.mask = self.mask.clip(self.rect)

        self.level += 1
        self.value = None
        return sibling

    def to_stream(self) -> 'StreamCell':
        """Запись для выходного потока ячеек"""
        value = self.value if self.value is not None else self.calc_value()
        # Плоская ячейка занимает единственный кадр 0
        zmin, zmax = (self.zmin, self.zmax) if self.ndim == 3 else (0, 1)
        return StreamCell(self.rect, zmin, zmax, value, self.level)


@dataclass
class StreamCell:
    """Терминальная ячейка в выходном потоке"""
    rect: Rect
    zmin: int
    zmax: int
    value: int
    level: int = 0

    def covers_frame(self, z: int) -> bool:
        return self.zmin <= z < self.zmax

    def to_dict(self) -> dict:
        return {
            'rect': self.rect.to_list(),
            'zmin': self.zmin,
            'zmax': self.zmax,
            'value': int(self.value),
            'level': self.level
        }


@dataclass
class CellStream:
    """Поток ячеек, упорядоченный по ключу (по умолчанию - по первому кадру)"""
    cells: List[StreamCell] = field(default_factory=list)

    def append(self, cell: StreamCell) -> None:
        self.cells.append(cell)

    def sort(self, key: Optional[Callable[[StreamCell], Any]] = None) -> 'CellStream':
        self.cells.sort(key=key or (lambda c: c.zmin))
        return self

    def frame(self, z: int) -> List[StreamCell]:
        """Ячейки, перекрывающие кадр z"""
        return [c for c in self.cells if c.covers_frame(z)]

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[StreamCell]:
        return iter(self.cells)

    def __getitem__(self, i: int) -> StreamCell:
        return self.cells[i]
