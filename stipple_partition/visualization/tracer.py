"""
Трассировщик для сбора данных визуализации процесса разбиения
"""
import json
import csv
from pathlib import Path
from typing import Optional, Any, Iterable
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class TraceRecorder:
    """
    Сборщик артефактов для визуализации процесса разбиения

    Записывает:
    1. Описание входного поля плотности
    2. Сводку каждого поколения (активные и терминальные ячейки)
    3. Решения о разрезах (CSV, по строке на ячейку и поколение)
    4. Финальные ячейки
    """
    max_final_cells: int = 100000
    data: dict = field(default_factory=dict)

    _have_input: bool = False
    _stats_file: Optional[Any] = None
    _stats_writer: Optional[Any] = None
    _stats_header_written: bool = False

    def __post_init__(self):
        """Инициализация структуры данных"""
        self.data = {
            'metadata': {
                'version': '1.0',
                'description': 'Density partition trace for visualization'
            },
            'generations': []
        }

    def record_input(self, shape, total_mass: int, model: Optional[str] = None) -> None:
        """
        Запись описания входного поля

        Args:
            shape: Форма поля (H, W) или (Z, H, W)
            total_mass: Полная масса плотности
            model: Имя модели плотности
        """
        if self._have_input:
            return

        self.data['input'] = {
            'shape': [int(s) for s in shape],
            'total_mass': int(total_mass),
            'model': model
        }
        self._have_input = True
        logger.debug(f"Recorded input field {list(shape)}")

    def record_generation(self, generation: int, active: int, static: int, splits: int) -> None:
        """Запись сводки поколения"""
        self.data['generations'].append({
            'generation': int(generation),
            'active_cells': int(active),
            'static_cells': int(static),
            'splits': int(splits)
        })

    def record_final_cells(self, cells: Iterable[Any]) -> None:
        """
        Запись финальных ячеек

        Args:
            cells: Итератор по StreamCell
        """
        final = []
        total = 0
        for cell in cells:
            total += 1
            if len(final) < self.max_final_cells:
                final.append(cell.to_dict())

        self.data['final_cells'] = {
            'cells': final,
            'total_cells': total,
            'truncated': total > len(final)
        }
        logger.debug(f"Recorded {len(final)} of {total} final cells")

    def record_density_stats(self, stats: dict) -> None:
        """Запись статистики поля плотности (compute_density_stats) первого кадра"""
        self.data['density_stats'] = dict(stats)
        logger.debug(f"Recorded density stats: {sorted(stats)}")

    def start_stats_recording(self, path: Path):
        """Открывает CSV-файл для записи решений о разрезах."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._stats_file = open(path, 'w', newline='', encoding='utf-8')
            self._stats_writer = csv.writer(self._stats_file)
            logger.info(f"Split decision recording enabled, saving to {path}")
        except OSError as e:
            logger.error(f"Failed to open stats file {path}: {e}")
            self._stats_file = None
            self._stats_writer = None

    def record_split_decision(self, data: dict):
        """Записывает одну строку данных о решении в CSV."""
        if not self._stats_writer:
            return

        if not self._stats_header_written:
            self._stats_writer.writerow(data.keys())
            self._stats_header_written = True
        self._stats_writer.writerow(data.values())

    def close(self):
        """Закрывает CSV-файл."""
        if self._stats_file:
            self._stats_file.close()
            self._stats_file = None
            self._stats_writer = None
            logger.debug("Stats CSV file closed.")

    def dump(self, path: Path) -> None:
        """
        Сохранение трассировки в JSON файл

        Args:
            path: Путь к выходному файлу
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.data, f, ensure_ascii=False, indent=2)

        logger.info(f"Trace saved to {path}")

    def get_summary(self) -> dict:
        """
        Краткая сводка по трассировке

        Returns:
            Словарь со статистикой
        """
        summary = {
            'has_input': self._have_input,
            'n_generations': len(self.data['generations'])
        }

        if 'final_cells' in self.data:
            summary['n_final_cells'] = self.data['final_cells']['total_cells']

        return summary
