"""
Загрузчики кадров поля плотности, сохранённых в форматах NumPy
"""
import numpy as np
from pathlib import Path
from typing import Tuple, Dict, Any, List
import logging

logger = logging.getLogger(__name__)


def load_frames(file_path: str) -> Tuple[List[np.ndarray], Dict[str, Any]]:
    """
    Универсальный загрузчик кадров

    Args:
        file_path: Путь к файлу или директории

    Returns:
        (frames, metadata)
        frames: Список кадров (H, W) или (H, W, C)
        metadata: Словарь с метаданными

    Поддерживаемые форматы:
        .npy: (H, W) - один кадр, (H, W, 3|4) - один цветной кадр,
              (Z, H, W) - стопка кадров, (Z, H, W, C) - стопка цветных кадров
        .npz: Массив 'frames' или все массивы архива в порядке имён
        Директория: Все .npy файлы в порядке имён, по кадру на файл
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Файл не найден: {path}")

    metadata: Dict[str, Any] = {
        'source_path': path.as_posix(),
        'filename': path.name
    }

    if path.is_dir():
        metadata['format'] = 'dir'
        frames = _load_directory(path)
    else:
        ext = path.suffix.lower()
        metadata['format'] = ext.lstrip('.')
        logger.info(f"Loading {ext} file: {path.name}")

        if ext == '.npy':
            frames = _split_stack(_load_array(path))
        elif ext == '.npz':
            frames = _load_archive(path)
        else:
            raise ValueError(f"Неподдерживаемый формат: {ext}")

    if frames:
        metadata['shape'] = list(frames[0].shape[:2])
        metadata['dtype'] = str(frames[0].dtype)
    metadata['n_frames'] = len(frames)

    logger.info(f"Loaded {len(frames)} frame(s) from {path.name}")
    return frames, metadata


def _load_array(path: Path) -> np.ndarray:
    try:
        return np.load(path.as_posix(), allow_pickle=False)
    except (OSError, ValueError) as e:
        raise ValueError(f"Ошибка чтения файла {path}: {e}")


def _split_stack(arr: np.ndarray) -> List[np.ndarray]:
    """Разбор массива на кадры по его размерности"""
    if arr.ndim == 2:
        return [arr]
    if arr.ndim == 3:
        if arr.shape[2] in (3, 4):
            return [arr]
        return [arr[z] for z in range(arr.shape[0])]
    if arr.ndim == 4:
        return [arr[z] for z in range(arr.shape[0])]
    raise ValueError(f"Cannot interpret array of shape {arr.shape} as frames")


def _load_archive(path: Path) -> List[np.ndarray]:
    """Загрузка .npz архива"""
    try:
        with np.load(path.as_posix(), allow_pickle=False) as archive:
            if 'frames' in archive.files:
                return _split_stack(archive['frames'])
            frames = []
            for name in sorted(archive.files):
                frames.extend(_split_stack(archive[name]))
            return frames
    except (OSError, ValueError) as e:
        raise ValueError(f"Ошибка чтения архива {path}: {e}")


def _load_directory(path: Path) -> List[np.ndarray]:
    """Загрузка всех .npy файлов директории"""
    files = sorted(path.glob('*.npy'))
    if not files:
        raise ValueError(f"В директории {path} нет .npy файлов")

    frames = []
    for f in files:
        arr = _load_array(f)
        if arr.ndim not in (2, 3):
            raise ValueError(f"Frame file {f.name} must hold a single frame, got shape {arr.shape}")
        frames.append(arr)
        logger.debug(f"Loaded frame {f.name} {arr.shape}")
    return frames


def validate_frames(frames: List[np.ndarray], min_size: int = 1) -> None:
    """
    Валидация загруженных кадров

    Args:
        frames: Список кадров
        min_size: Минимальная ширина и высота кадра

    Raises:
        ValueError: Если данные не соответствуют требованиям
    """
    if not frames:
        raise ValueError("No frames loaded")

    shape = None
    for i, frame in enumerate(frames):
        if not isinstance(frame, np.ndarray):
            raise TypeError("Expected numpy.ndarray")

        if frame.ndim not in (2, 3) or (frame.ndim == 3 and frame.shape[2] not in (1, 3, 4)):
            raise ValueError(f"Frame {i} must have shape (H, W) or (H, W, C), got {frame.shape}")

        h, w = frame.shape[:2]
        if h < min_size or w < min_size:
            raise ValueError(f"Frame {i} is too small: {w}x{h} < {min_size}")

        if shape is None:
            shape = (h, w)
        elif (h, w) != shape:
            raise ValueError(f"Frame {i} has size {w}x{h}, expected {shape[1]}x{shape[0]}")

        if np.issubdtype(frame.dtype, np.floating) and not np.isfinite(frame).all():
            n_invalid = int((~np.isfinite(frame)).sum())
            raise ValueError(f"Frame {i} has {n_invalid} NaN or Inf values")
