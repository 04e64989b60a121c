"""
Утилиты для разбиения поля плотности
"""
from .density import (
    DensityModel,
    DensitySource,
    DENSITY_MODELS,
    get_model,
    density_from_image,
    compute_density_stats
)

__all__ = [
    'DensityModel',
    'DensitySource',
    'DENSITY_MODELS',
    'get_model',
    'density_from_image',
    'compute_density_stats'
]
