"""
Модуль визуализации для разбиения поля плотности
"""
from .tracer import TraceRecorder

__all__ = ['TraceRecorder']
