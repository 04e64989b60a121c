"""
Ядро: таблицы сумм, маски, поиск центров и дерево разбиения
"""
from .structures import Rect, Cell, StreamCell, CellStream
from .sumtable import PlaneSumTable, AxisSumTable
from .volume import VolumeSumTable
from .mask import RegionMask, MaskRun, MaskAggregate

__all__ = [
    'Rect', 'Cell', 'StreamCell', 'CellStream',
    'PlaneSumTable', 'AxisSumTable', 'VolumeSumTable',
    'RegionMask', 'MaskRun', 'MaskAggregate'
]
