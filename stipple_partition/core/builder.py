import os
import time
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple
import logging

import numpy as np

from .structures import Cell, CellStream
from .metrics import SplitSelector, SplitCandidate
from ..config import PartitionConfig, AXIS_NAMES
from ..visualization.tracer import TraceRecorder

logger = logging.getLogger(__name__)


@dataclass
class SplitResult:
    """Результат разбиения одной ячейки"""
    cell: Cell
    sibling: Optional[Cell] = None
    candidate: Optional[SplitCandidate] = None
    candidates: List[SplitCandidate] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.sibling is None


class PartitionTree:
    """
    Дерево разбиения поля плотности на ячейки близкой массы

    Разбиение идёт поколениями: в каждом поколении все активные ячейки
    делятся параллельно в пуле потоков, затем фронт собирается заново.
    Ячейки, которые больше нельзя разделить, переходят в static_cells.
    """

    def __init__(self,
                 source,
                 config: Optional[PartitionConfig] = None,
                 mask=None,
                 trace: Optional[TraceRecorder] = None):
        """
        Args:
            source: PlaneSumTable или VolumeSumTable
            config: Конфигурация
            mask: Необязательная RegionMask корневой ячейки (только плоскость)
            trace: Опциональный трассировщик
        """
        self.config = config if config is not None else PartitionConfig()
        self.config.validate()
        self.source = source
        self.trace = trace
        self.selector = SplitSelector(self.config)

        if mask is not None and source.ndim != 2:
            raise ValueError("Region masks are supported only for plane tables")

        zmax = source.len_z if source.ndim == 3 else 0
        self.mask = mask
        root = Cell(source, source.rect, 0, zmax, mask)

        self.cells: List[Cell] = [root]
        self.static_cells: List[Cell] = []
        self.generation = 0
        self._lock = threading.Lock()

        self.stats = {
            'build_time': 0.0,
            'splits_performed': 0,
            'generations_run': 0
        }

        logger.info(
            f"Partition tree over {source.rect.to_list()}"
            f"{f' x {zmax} frames' if source.ndim == 3 else ''}, "
            f"strategy={self.config.strategy}, weights={self.config.weights()}"
        )

    def _workers(self) -> int:
        if self.config.max_workers <= 0:
            return os.cpu_count() or 1
        return self.config.max_workers

    # ======== Разбиение ========

    def split_cell(self, cell: Cell) -> SplitResult:
        """
        Разбиение одной ячейки

        Ячейка без положительной или без дополнительной массы терминальна.
        Иначе выбирается разрез; если подходящего нет, ячейка терминальна
        и получает кэшированное среднее значение.
        """
        if cell.mass() == 0 or cell.neg_mass() == 0:
            cell.calc_value()
            return SplitResult(cell)

        candidate, candidates = self.selector.select(cell)
        if candidate is None:
            cell.calc_value()
            return SplitResult(cell, None, None, candidates)

        sibling = cell.bisect(candidate.axis, candidate.position)
        return SplitResult(cell, sibling, candidate, candidates)

    def split(self, executor: Optional[ThreadPoolExecutor] = None) -> int:
        """
        Одно поколение разбиения

        Все активные ячейки отправляются в пул, вызов ждёт завершения
        всех задач. Новый фронт собирается в порядке исходных ячеек,
        поэтому результат не зависит от порядка завершения задач.

        Returns:
            Число выполненных разрезов
        """
        with self._lock:
            if not self.cells:
                return 0

            if executor is None:
                with ThreadPoolExecutor(max_workers=self._workers()) as pool:
                    results = self._split_all(pool)
            else:
                results = self._split_all(executor)

            frontier = []
            n_splits = 0
            for result in results:
                if result.terminal:
                    self.static_cells.append(result.cell)
                else:
                    frontier.append(result.cell)
                    frontier.append(result.sibling)
                    n_splits += 1
                self._trace_result(result)

            self.cells = frontier
            self.generation += 1
            self.stats['splits_performed'] += n_splits

        if self.trace:
            self.trace.record_generation(self.generation, len(self.cells), len(self.static_cells), n_splits)

        logger.debug(
            f"Generation {self.generation}: {n_splits} splits, "
            f"{len(self.cells)} active, {len(self.static_cells)} static"
        )
        return n_splits

    def _split_all(self, executor) -> List[SplitResult]:
        futures = {executor.submit(self.split_cell, cell): i for i, cell in enumerate(self.cells)}
        results: List[Optional[SplitResult]] = [None] * len(futures)
        for future in as_completed(futures):
            results[futures[future]] = future.result()
        return results

    def _trace_result(self, result: SplitResult) -> None:
        if not self.trace:
            return
        cand = result.candidate or (result.candidates[0] if result.candidates else None)
        self.trace.record_split_decision({
            'generation': self.generation,
            'level': result.cell.level,
            'rect': ' '.join(str(v) for v in result.cell.rect.to_list()),
            'zmin': result.cell.zmin,
            'zmax': result.cell.zmax,
            'axis': AXIS_NAMES[cand.axis] if cand else '',
            'position': cand.position if cand else '',
            'score': cand.score if cand else '',
            'pole': cand.pole if cand else '',
            'antipole': cand.antipole if cand else '',
            'method': cand.method if cand else '',
            'terminal': result.terminal
        })

    def run(self, generations: Optional[int] = None,
            callback: Optional[Callable[['PartitionTree'], Any]] = None) -> int:
        """
        Выполнение нескольких поколений

        Args:
            generations: Максимум поколений (по умолчанию из конфигурации)
            callback: Вызывается после каждого поколения

        Returns:
            Число выполненных поколений (меньше запрошенного, если фронт опустел)
        """
        if generations is None:
            generations = self.config.generations

        start_time = time.perf_counter()
        done = 0
        with ThreadPoolExecutor(max_workers=self._workers()) as executor:
            for _ in range(generations):
                if not self.cells:
                    logger.info(f"No active cells left after {self.generation} generations")
                    break
                self.split(executor)
                done += 1
                if callback is not None:
                    callback(self)

        elapsed = time.perf_counter() - start_time
        self.stats['build_time'] += elapsed
        self.stats['generations_run'] += done

        logger.info(
            f"Ran {done} generations in {elapsed:.2f}s: "
            f"{len(self.cells)} active, {len(self.static_cells)} static cells"
        )
        return done

    # ======== Кадры ========

    def add_frame(self, samples: np.ndarray, model=None, origin: Tuple[int, int] = (0, 0)) -> bool:
        """
        Дописывание кадра в объёмный источник

        Допускается только до первого поколения: корневая ячейка
        расширяется на новый кадр.

        Raises:
            ValueError: Если источник не объёмный
            RuntimeError: Если разбиение уже началось
        """
        if self.source.ndim != 3:
            raise ValueError("Frames can be added only to a volume source")

        if model is not None:
            from ..utils.density import density_from_image  # локальный импорт, не создаёт цикл
            samples = density_from_image(samples, model)

        with self._lock:
            if self.generation > 0:
                raise RuntimeError("Cannot add frames after partitioning has started")
            if not self.source.append_frame(samples, origin):
                return False
            root = self.cells[0]
            root.zmax = self.source.len_z
            root.value = None

        logger.debug(f"Frame appended, volume now has {self.source.len_z} frames")
        return True

    # ======== Результаты ========

    def all_cells(self) -> List[Cell]:
        return self.static_cells + self.cells

    def cell_stream(self, key=None) -> CellStream:
        """Поток всех ячеек (терминальных и активных), упорядоченный по ключу"""
        stream = CellStream([cell.to_stream() for cell in self.all_cells()])
        return stream.sort(key)

    def value_at(self, x: int, y: int, z: Optional[int] = None) -> int:
        """Плотность источника в точке"""
        if self.source.ndim == 3:
            return self.source.value_at(x, y, z)
        return self.source.value_at(x, y)

    def total_mass(self) -> int:
        """Сумма масс всех ячеек (для маски - в единицах mass_scale)"""
        return sum(cell.mass() for cell in self.all_cells())

    def source_mass(self) -> int:
        """Масса источника в тех же единицах, что total_mass"""
        if self.mask is not None:
            return self.mask.apply_to(self.source, self.source.rect).weighted_mass
        return self.source.total_mass()

    def get_stats(self) -> dict:
        """Статистика дерева"""
        cells = self.all_cells()
        levels = [cell.level for cell in cells]
        return {
            'generation': self.generation,
            'active_cells': len(self.cells),
            'static_cells': len(self.static_cells),
            'total_cells': len(cells),
            'max_level': max(levels) if levels else 0,
            'total_mass': self.total_mass(),
            'source_mass': self.source_mass(),
            'mass_scale': self.mask.scale if self.mask is not None else 1,
            'splits_performed': self.stats['splits_performed'],
            'build_time': self.stats['build_time']
        }
