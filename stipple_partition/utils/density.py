"""
Модели плотности: преобразование пикселей и кадров в 16-битные отсчёты
"""
import numpy as np
from typing import Callable, Dict, Iterable, Iterator, Optional, Sequence, Union
import logging

from ..config import DENSITY_MAX

logger = logging.getLogger(__name__)

Pixel = Union[int, Sequence[int]]


def _rgba16(pixel: Pixel) -> tuple:
    """
    Приведение пикселя к кортежу (r, g, b, a) в 16-битных каналах

    Скаляр трактуется как оттенок серого, тройка - как непрозрачный RGB.
    """
    if np.isscalar(pixel):
        v = int(pixel)
        return v, v, v, DENSITY_MAX
    channels = [int(c) for c in pixel]
    if len(channels) == 3:
        return channels[0], channels[1], channels[2], DENSITY_MAX
    if len(channels) == 4:
        return channels[0], channels[1], channels[2], channels[3]
    raise ValueError(f"Pixel must have 1, 3 or 4 channels, got {len(channels)}")


def to_rgba16(image: np.ndarray) -> np.ndarray:
    """
    Приведение изображения к массиву (H, W, 4) uint32 с 16-битными каналами

    Args:
        image: (H, W) серое, (H, W, 3) RGB или (H, W, 4) RGBA;
               uint8 масштабируется на 257, float из [0, 1] - на 65535

    Returns:
        Массив каналов в диапазоне 0..65535
    """
    arr = np.asarray(image)

    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3 or arr.shape[2] not in (1, 3, 4):
        raise ValueError(f"Image must have shape (H, W), (H, W, 3) or (H, W, 4), got {np.shape(image)}")

    if arr.dtype == np.uint8:
        chans = arr.astype(np.uint32) * 257
    elif np.issubdtype(arr.dtype, np.floating):
        if not np.isfinite(arr).all():
            raise ValueError("Image contains NaN or Inf values")
        chans = np.rint(np.clip(arr, 0.0, 1.0) * DENSITY_MAX).astype(np.uint32)
    elif np.issubdtype(arr.dtype, np.integer) or arr.dtype == np.bool_:
        if arr.size and (arr.min() < 0 or arr.max() > DENSITY_MAX):
            raise ValueError(f"Integer image values must lie in 0..{DENSITY_MAX}")
        chans = arr.astype(np.uint32)
    else:
        raise TypeError(f"Unsupported image dtype: {arr.dtype}")

    h, w, c = chans.shape
    if c == 4:
        return chans

    rgba = np.empty((h, w, 4), dtype=np.uint32)
    if c == 1:
        rgba[:, :, :3] = chans
    else:
        rgba[:, :, :3] = chans[:, :, :3]
    rgba[:, :, 3] = DENSITY_MAX
    return rgba


class DensityModel:
    """
    Модель плотности: преобразует цвет в значение 0..65535

    Каждая модель имеет поточечную форму (convert) и векторную форму
    (convert_array). Если векторная функция не задана, она строится
    из поточечной попиксельным обходом.
    """

    def __init__(self,
                 name: str,
                 pixel_func: Callable[[tuple], int],
                 array_func: Optional[Callable[[np.ndarray], np.ndarray]] = None):
        self.name = name
        self._pixel_func = pixel_func
        self._array_func = array_func

    def __repr__(self) -> str:
        return f"DensityModel({self.name!r})"

    def convert(self, pixel: Pixel) -> int:
        """Плотность одного пикселя (каналы в 16-битной шкале)"""
        d = int(self._pixel_func(_rgba16(pixel)))
        if not 0 <= d <= DENSITY_MAX:
            raise ValueError(f"Density model {self.name!r} returned {d}, outside 0..{DENSITY_MAX}")
        return d

    def convert_array(self, image: np.ndarray) -> np.ndarray:
        """
        Плотность для всего изображения

        Returns:
            Массив (H, W) uint16
        """
        rgba = to_rgba16(image)

        if self._array_func is not None:
            out = self._array_func(rgba)
        else:
            h, w, _ = rgba.shape
            out = np.empty((h, w), dtype=np.int64)
            for y in range(h):
                for x in range(w):
                    out[y, x] = self._pixel_func(tuple(int(c) for c in rgba[y, x]))

        out = np.asarray(out)
        if out.size and (out.min() < 0 or out.max() > DENSITY_MAX):
            raise ValueError(f"Density model {self.name!r} produced values outside 0..{DENSITY_MAX}")
        return out.astype(np.uint16)

    @classmethod
    def from_function(cls, func: Callable[[tuple], int], name: str = 'custom') -> 'DensityModel':
        """Модель из произвольной функции (r, g, b, a) -> плотность"""
        return cls(name, func)


_CHANNEL_NAMES = ('red', 'green', 'blue', 'alpha')


def _channel(index: int, negate: bool = False) -> DensityModel:
    """Линейная модель одного канала"""
    if negate:
        return DensityModel(
            f'neg_{_CHANNEL_NAMES[index]}',
            lambda p: DENSITY_MAX - p[index],
            lambda a: DENSITY_MAX - a[:, :, index]
        )
    return DensityModel(
        _CHANNEL_NAMES[index],
        lambda p: p[index],
        lambda a: a[:, :, index]
    )


AVG_DENSITY = DensityModel(
    'avg',
    lambda p: (p[0] + p[1] + p[2]) // 3,
    lambda a: (a[:, :, 0] + a[:, :, 1] + a[:, :, 2]) // 3
)
NEG_AVG_DENSITY = DensityModel(
    'neg_avg',
    lambda p: DENSITY_MAX - (p[0] + p[1] + p[2]) // 3,
    lambda a: DENSITY_MAX - (a[:, :, 0] + a[:, :, 1] + a[:, :, 2]) // 3
)
RED_DENSITY = _channel(0)
GREEN_DENSITY = _channel(1)
BLUE_DENSITY = _channel(2)
ALPHA_DENSITY = _channel(3)
NEG_RED_DENSITY = _channel(0, negate=True)
NEG_GREEN_DENSITY = _channel(1, negate=True)
NEG_BLUE_DENSITY = _channel(2, negate=True)
NEG_ALPHA_DENSITY = _channel(3, negate=True)

DENSITY_MODELS: Dict[str, DensityModel] = {
    'avg': AVG_DENSITY,
    'red': RED_DENSITY,
    'green': GREEN_DENSITY,
    'blue': BLUE_DENSITY,
    'alpha': ALPHA_DENSITY,
    'neg_avg': NEG_AVG_DENSITY,
    'neg_red': NEG_RED_DENSITY,
    'neg_green': NEG_GREEN_DENSITY,
    'neg_blue': NEG_BLUE_DENSITY,
    'neg_alpha': NEG_ALPHA_DENSITY,
}


def get_model(name: str) -> DensityModel:
    """Встроенная модель плотности по имени"""
    try:
        return DENSITY_MODELS[name]
    except KeyError:
        raise ValueError(f"Unknown density model: {name!r} (available: {sorted(DENSITY_MODELS)})")


def density_from_image(image: np.ndarray,
                       model: Union[DensityModel, str] = AVG_DENSITY) -> np.ndarray:
    """
    Преобразование изображения в поле плотности

    Args:
        image: Изображение (H, W[, C])
        model: Модель плотности или её имя

    Returns:
        Отсчёты плотности (H, W) uint16
    """
    if isinstance(model, str):
        model = get_model(model)
    return model.convert_array(image)


class DensitySource:
    """
    Источник плотности: поток кадров, преобразуемый моделью в отсчёты

    Кадры, уже имеющие dtype uint16 и форму (H, W), считаются готовыми
    отсчётами плотности, если raw=True.
    """

    def __init__(self,
                 frames: Iterable[np.ndarray],
                 model: Union[DensityModel, str] = AVG_DENSITY,
                 raw: bool = False):
        self.frames = frames
        self.model = get_model(model) if isinstance(model, str) else model
        self.raw = raw

    def __iter__(self) -> Iterator[np.ndarray]:
        for i, frame in enumerate(self.frames):
            if self.raw:
                samples = np.asarray(frame)
                if samples.ndim != 2:
                    raise ValueError(f"Raw density frame {i} must be 2D, got shape {samples.shape}")
                if samples.size and (samples.min() < 0 or samples.max() > DENSITY_MAX):
                    raise ValueError(f"Raw density frame {i} has values outside 0..{DENSITY_MAX}")
                yield samples.astype(np.uint16)
            else:
                yield self.model.convert_array(frame)

    def plane_table(self):
        """Таблица площадных сумм по первому кадру"""
        from ..core.sumtable import PlaneSumTable  # локальный импорт, не создаёт цикл

        for samples in self:
            return PlaneSumTable.from_samples(samples)
        raise ValueError("Density source is empty")

    def volume_table(self, capacity: int = 0):
        """
        Таблица объёмных сумм по всем кадрам

        Args:
            capacity: Ёмкость по Z; 0 - ровно по числу кадров
        """
        from ..core.volume import VolumeSumTable

        frames = list(self)
        if not frames:
            raise ValueError("Density source is empty")

        cap = capacity if capacity > 0 else len(frames)
        h, w = frames[0].shape
        table = VolumeSumTable.empty(w, h, cap)
        for samples in frames:
            if not table.append_frame(samples):
                break
        logger.info(f"Volume table filled: {table.len_z}/{table.cap_z} frames of {w}x{h}")
        return table


def compute_density_stats(samples: np.ndarray) -> dict:
    """
    Статистика поля плотности

    Args:
        samples: Отсчёты (H, W) или (Z, H, W)

    Returns:
        Словарь со статистикой
    """
    arr = np.asarray(samples)
    values = arr.astype(np.float64)
    total = int(arr.astype(np.uint64).sum())
    n = int(arr.size)

    stats = {
        'shape': list(arr.shape),
        'n_samples': n,
        'total_mass': total,
        'neg_total_mass': n * DENSITY_MAX - total,
        'mean': float(values.mean()) if n else 0.0,
        'std': float(values.std()) if n else 0.0,
        'min': int(arr.min()) if n else 0,
        'max': int(arr.max()) if n else 0,
    }

    # Центр масс по последним двум осям (y, x)
    if total > 0 and arr.ndim >= 2:
        plane = values.reshape(-1, arr.shape[-2], arr.shape[-1]).sum(axis=0)
        ys = np.arange(plane.shape[0], dtype=np.float64)
        xs = np.arange(plane.shape[1], dtype=np.float64)
        stats['cm_x'] = float((plane.sum(axis=0) * xs).sum() / total)
        stats['cm_y'] = float((plane.sum(axis=1) * ys).sum() / total)

    return stats
