import json
import numpy as np
from pathlib import Path
from typing import Optional, List, Tuple, Any
from dataclasses import asdict
import logging

from ..core.structures import CellStream

logger = logging.getLogger(__name__)


def export_cells(tree,
                 output_dir: str,
                 formats: List[str],
                 shape: Tuple[int, int],
                 n_frames: int = 1,
                 metadata: Optional[dict] = None) -> None:
    """
    Экспорт ячеек дерева в указанные форматы

    Args:
        tree: PartitionTree
        output_dir: Выходная директория
        formats: Список форматов ['json', 'npy']
        shape: Размер кадра (H, W) для растеризации
        n_frames: Число кадров для растеризации
        metadata: Метаданные входных данных (для JSON)
    """
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    stream = tree.cell_stream()

    for fmt in formats:
        if fmt == 'none':
            continue

        logger.info(f"Exporting to {fmt.upper()} format...")

        if fmt == 'json':
            export_cells_json(stream, out_path / 'cells.json', metadata)
        elif fmt == 'npy':
            export_frames_npy(stream, shape, n_frames, out_path / 'frames.npy')
        else:
            logger.warning(f"Unknown export format: {fmt}")


def export_cells_json(stream: CellStream,
                      output_file: Path,
                      metadata: Optional[dict] = None) -> None:
    """
    Экспорт потока ячеек в JSON

    Формат:
    {
        "metadata": {...},
        "cells": [
            {
                "rect": [xmin, ymin, xmax, ymax],  # Max исключительно
                "zmin": int,                       # Первый кадр
                "zmax": int,                       # Кадр после последнего
                "value": int,                      # Средняя плотность 0..65535
                "level": int                       # Число разрезов
            },
            ...
        ]
    }
    """
    data = {
        'metadata': _json_safe(metadata or {}),
        'cells': [cell.to_dict() for cell in stream]
    }

    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)

    logger.info(f"Exported {len(stream)} cells to {output_file}")


def _json_safe(metadata: dict) -> dict:
    """Отбрасывание значений, которые нельзя записать в JSON"""
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool, list, type(None)))}


def render_frame(stream: CellStream,
                 shape: Tuple[int, int],
                 z: int = 0,
                 origin: Tuple[int, int] = (0, 0)) -> np.ndarray:
    """
    Растеризация кадра: каждая ячейка заливается своим средним значением

    Args:
        stream: Поток ячеек
        shape: Размер кадра (H, W)
        z: Номер кадра
        origin: Координаты левого верхнего пикселя кадра

    Returns:
        Кадр (H, W) uint16
    """
    h, w = shape
    x0, y0 = origin
    frame = np.zeros((h, w), dtype=np.uint16)

    for cell in stream.frame(z):
        r = cell.rect
        xa, xb = max(r.xmin - x0, 0), min(r.xmax - x0, w)
        ya, yb = max(r.ymin - y0, 0), min(r.ymax - y0, h)
        if xa < xb and ya < yb:
            frame[ya:yb, xa:xb] = cell.value

    return frame


def export_frames_npy(stream: CellStream,
                      shape: Tuple[int, int],
                      n_frames: int,
                      output_file: Path) -> None:
    """Экспорт растеризованных кадров в .npy массив (Z, H, W) uint16"""
    frames = np.stack([render_frame(stream, shape, z) for z in range(max(1, n_frames))])

    output_file.parent.mkdir(parents=True, exist_ok=True)
    np.save(output_file.as_posix(), frames)

    logger.info(f"Exported {frames.shape[0]} rendered frame(s) to {output_file}")


def export_statistics(tree,
                      output_file: Path,
                      build_time: Optional[float] = None,
                      peak_memory_mb: Optional[float] = None,
                      cpu_time_sec: Optional[float] = None,
                      config: Optional[Any] = None) -> None:
    """
    Экспорт статистики разбиения

    Args:
        tree: PartitionTree
        output_file: Путь к выходному JSON файлу
        build_time: Время разбиения (секунды)
        peak_memory_mb: Память процесса после разбиения (МБ)
        cpu_time_sec: Процессорное время разбиения (секунды)
        config: Конфигурация дерева
    """
    stats = tree.get_stats()
    cells = tree.all_cells()

    masses = [cell.mass() for cell in cells]
    mass_values = np.asarray(masses, dtype=np.float64)
    volumes = [cell.volume() for cell in cells]

    result = {
        'input': {
            'rect': tree.source.rect.to_list(),
            'frames': tree.source.len_z if tree.source.ndim == 3 else 1,
            'total_mass': stats['source_mass'],
            'mass_scale': stats['mass_scale']
        },
        'tree': {
            'generation': stats['generation'],
            'active_cells': stats['active_cells'],
            'static_cells': stats['static_cells'],
            'max_level': stats['max_level'],
            'splits_performed': stats['splits_performed'],
            'mass_conserved': stats['total_mass'] == stats['source_mass']
        },
        'cells': {
            'min_mass': min(masses) if masses else 0,
            'max_mass': max(masses) if masses else 0,
            'mean_mass': float(mass_values.mean()) if masses else 0,
            'std_mass': float(mass_values.std()) if masses else 0,
            'min_volume': min(volumes) if volumes else 0,
            'max_volume': max(volumes) if volumes else 0,
            'median_volume': float(np.median(volumes)) if volumes else 0
        }
    }

    if build_time is not None:
        n_cells = len(cells)
        result['performance'] = {
            'build_time_wall_sec': build_time,
            'build_time_cpu_sec': cpu_time_sec,
            'peak_memory_mb': peak_memory_mb,
            'cells_per_sec_wall': n_cells / build_time if build_time > 0 else 0,
            'cells_per_sec_cpu': n_cells / cpu_time_sec if cpu_time_sec else 0
        }

    if config is not None:
        result['config'] = asdict(config)

    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(result, f, ensure_ascii=False, indent=2)

    logger.info(f"Exported statistics to {output_file}")
