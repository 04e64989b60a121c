from __future__ import annotations
from typing import Any

# 1) Версия пакета из метаданных установленного дистрибутива
from importlib.metadata import version as _pkg_version, PackageNotFoundError

try:
    __version__ = _pkg_version("stipple-partition")
except PackageNotFoundError:
    # в editable/develop-режиме пакет может быть не «установлен»
    __version__ = "0.1.0"

__all__ = ["__version__", "PartitionTree"]

# 2) Ленивый экспорт для публичного API (избегаем ранних импортов)
def __getattr__(name: str) -> Any:
    if name == "PartitionTree":
        from .core.builder import PartitionTree  # локальный импорт, не создаёт цикл
        return PartitionTree
    raise AttributeError(name)
