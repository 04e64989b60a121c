"""
Модуль ввода-вывода для разбиения поля плотности
"""
from .loaders import (
    load_frames,
    validate_frames
)
from .exporters import (
    export_cells,
    export_cells_json,
    export_frames_npy,
    export_statistics,
    render_frame
)

__all__ = [
    'load_frames',
    'validate_frames',
    'export_cells',
    'export_cells_json',
    'export_frames_npy',
    'export_statistics',
    'render_frame'
]
