"""
Конфигурация и константы для разбиения поля плотности
"""
from dataclasses import dataclass
from typing import Literal
import json
from pathlib import Path

# ============ КОНСТАНТЫ ============

# Плотность
DENSITY_MAX = 0xFFFF  # Максимальное значение 16-битного отсчёта плотности
DENSITY_HALF = 0x7FFF  # Для округления при умножении весов маски

# Аккумуляторы
UINT64_MAX = 2 ** 64 - 1  # Потолок 64-битных префиксных сумм

# Разбиение
DEFAULT_GENERATIONS = 24  # Число поколений по умолчанию
AXIS_NAMES = ('X', 'Y', 'Z')

STRATEGIES = ('dipole', 'centroid')


@dataclass
class PartitionConfig:
    """Конфигурация дерева разбиения"""

    # ======== Поколения ========
    generations: int = DEFAULT_GENERATIONS

    # ======== Веса осей ========
    x_weight: int = 1  # Относительный вес оси X (0 - ось отключена)
    y_weight: int = 1  # Относительный вес оси Y
    z_weight: int = 1  # Относительный вес оси Z (кадры)

    # ======== Параллелизм ========
    max_workers: int = 1  # Размер пула; <= 0 - все доступные ядра

    # ======== Алгоритм ========
    strategy: Literal['dipole', 'centroid'] = 'dipole'
    density_model: str = 'avg'  # Имя модели плотности

    # ======== Объём ========
    frame_capacity: int = 0  # Ёмкость по Z; 0 - по числу загруженных кадров

    # ======== Экспорт ========
    save_all: bool = False  # Сохранять каждое поколение

    def weights(self) -> tuple:
        """Веса осей в порядке (x, y, z)"""
        return self.x_weight, self.y_weight, self.z_weight

    def validate(self) -> None:
        """Проверка корректности конфигурации"""
        if self.generations < 0:
            raise ValueError(f"generations must be >= 0, got {self.generations}")

        for name, weight in zip(AXIS_NAMES, self.weights()):
            if weight < 0:
                raise ValueError(f"{name.lower()}_weight must be >= 0, got {weight}")

        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {self.strategy!r} (expected one of {STRATEGIES})")

        from .utils.density import DENSITY_MODELS  # локальный импорт, не создаёт цикл
        if self.density_model not in DENSITY_MODELS:
            raise ValueError(f"Unknown density model: {self.density_model!r}")

        if self.frame_capacity < 0:
            raise ValueError(f"frame_capacity must be >= 0, got {self.frame_capacity}")

    def save(self, path: Path) -> None:
        """Сохранение конфигурации в JSON"""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.__dict__, f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: Path) -> 'PartitionConfig':
        """Загрузка конфигурации из JSON"""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def from_args(cls, args, base: 'PartitionConfig' = None) -> 'PartitionConfig':
        """Создание конфигурации из аргументов командной строки"""
        config = base if base is not None else cls()

        if getattr(args, 'generations', None) is not None:
            config.generations = args.generations
        if getattr(args, 'x_weight', None) is not None:
            config.x_weight = args.x_weight
        if getattr(args, 'y_weight', None) is not None:
            config.y_weight = args.y_weight
        if getattr(args, 'z_weight', None) is not None:
            config.z_weight = args.z_weight
        if getattr(args, 'workers', None) is not None:
            config.max_workers = args.workers
        if getattr(args, 'strategy', None) is not None:
            config.strategy = args.strategy
        if getattr(args, 'model', None) is not None:
            config.density_model = args.model
        if getattr(args, 'capacity', None) is not None:
            config.frame_capacity = args.capacity
        if getattr(args, 'save_all', False):
            config.save_all = True

        config.validate()
        return config
