from typing import List, Optional, Tuple
from dataclasses import dataclass
import logging

from .centroid import find_center
from .structures import Cell
from ..config import AXIS_NAMES

logger = logging.getLogger(__name__)

# Порядок осей при равных оценках: сначала кадры, затем X и Y
AXIS_PRIORITY = (2, 0, 1)


@dataclass
class SplitCandidate:
    """Кандидат на разрез"""
    axis: int  # 0=X, 1=Y, 2=Z
    position: int  # Координата разреза
    score: int  # weight * |pole - antipole| или weight * extent
    weight: int  # Вес оси
    pole: int  # Центр положительной плотности
    antipole: int  # Центр дополнительной плотности
    method: str  # 'dipole' или 'centroid'

    def is_valid(self, lo: int, hi: int) -> bool:
        """Разрез строго внутри ячейки"""
        return lo < self.position < hi

    def to_dict(self) -> dict:
        return {
            'axis': AXIS_NAMES[self.axis],
            'position': self.position,
            'score': self.score,
            'weight': self.weight,
            'pole': self.pole,
            'antipole': self.antipole,
            'method': self.method
        }


class SplitSelector:
    """Выбор оси и позиции разреза ячейки"""

    def __init__(self, config):
        self.config = config

    def axis_weights(self, ndim: int) -> List[Tuple[int, int]]:
        """Включённые оси (axis, weight) в порядке приоритета"""
        weights = self.config.weights()
        return [(axis, weights[axis]) for axis in AXIS_PRIORITY
                if axis < ndim and weights[axis] > 0]

    def _center(self, cell: Cell, axis: int, negated: bool) -> int:
        return find_center(cell.source, cell.rect, axis, cell.zrange(), negated, cell.mask)

    def dipole_candidates(self, cell: Cell) -> List[SplitCandidate]:
        """
        Кандидаты метода диполя, упорядоченные по убыванию оценки

        Для каждой оси ищутся полюс (центр плотности) и антиполюс
        (центр дополнительной плотности). Чем дальше они друг от друга,
        тем сильнее контраст вдоль оси.
        """
        candidates = []
        for axis, weight in self.axis_weights(cell.ndim):
            pole = self._center(cell, axis, False)
            antipole = self._center(cell, axis, True)
            candidates.append(SplitCandidate(
                axis=axis,
                position=(pole + antipole + 1) // 2,
                score=weight * abs(pole - antipole),
                weight=weight,
                pole=pole,
                antipole=antipole,
                method='dipole'
            ))

        # sort устойчив: при равных оценках сохраняется порядок AXIS_PRIORITY
        candidates.sort(key=lambda c: -c.score)
        return candidates

    def centroid_candidate(self, cell: Cell) -> Optional[SplitCandidate]:
        """Разрез по центру масс вдоль оси с наибольшим weight * extent"""
        best = None
        for axis, weight in self.axis_weights(cell.ndim):
            score = weight * cell.extent(axis)
            if best is None or score > best[1]:
                best = (axis, score, weight)
        if best is None:
            return None

        axis, score, weight = best
        pole = self._center(cell, axis, False)
        return SplitCandidate(axis, pole, score, weight, pole, pole, 'centroid')

    def select(self, cell: Cell) -> Tuple[Optional[SplitCandidate], List[SplitCandidate]]:
        """
        Выбор разреза

        Returns:
            (выбранный кандидат или None, все рассмотренные кандидаты)
        """
        if self.config.strategy == 'centroid':
            candidate = self.centroid_candidate(cell)
            if candidate is None:
                return None, []
            if candidate.is_valid(cell.lo(candidate.axis), cell.hi(candidate.axis)):
                return candidate, [candidate]
            return None, [candidate]

        candidates = self.dipole_candidates(cell)
        for candidate in candidates:
            if candidate.score < candidate.weight:
                continue
            if candidate.is_valid(cell.lo(candidate.axis), cell.hi(candidate.axis)):
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(
                        f"  Dipole split on {AXIS_NAMES[candidate.axis]} at {candidate.position} "
                        f"(pole={candidate.pole}, antipole={candidate.antipole}, score={candidate.score})"
                    )
                return candidate, candidates
        return None, candidates
