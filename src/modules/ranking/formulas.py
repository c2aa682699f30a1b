"""
Arena Rating Formulas

Purpose
-------
Pure calculation functions for ratings and rank tiers: ELO clamping, ELO to
rank conversion, rank change classification and the pluggable ELO delta
calculator used at match completion.

Design Notes
------------
- No database or event access.
- Band tables and calculator parameters are passed in; ``build_elo_calculator``
  and ``load_rank_bands`` read them from ConfigManager-shaped objects.

Usage
-----
    from src.modules.ranking.formulas import convert_elo_to_rank

    convert_elo_to_rank(1500)   # RankName.N4
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple

from src.core.config.manager import ConfigManagerError
from src.database.models.enums import RankName

MIN_ELO = 0
MAX_ELO = 3000

RankBands = Dict[RankName, Tuple[int, int]]

DEFAULT_RANK_BANDS: RankBands = {
    RankName.N5: (0, 1000),
    RankName.N4: (1001, 2000),
    RankName.N3: (2001, 3000),
}

# Highest tier first
RANK_PRIORITY: Tuple[RankName, ...] = (RankName.N3, RankName.N4, RankName.N5)


class RankChange(str, enum.Enum):
    RANK_UP = "RANK_UP"
    RANK_DOWN = "RANK_DOWN"
    RANK_MAINTAIN = "RANK_MAINTAIN"


# ============================================================================
# ELO / rank conversion
# ============================================================================


def clamp_elo(elo: float, min_elo: int = MIN_ELO, max_elo: int = MAX_ELO) -> int:
    """
    Clamp a rating into ``[min_elo, max_elo]``.

    Example:
        >>> clamp_elo(3050)
        3000
        >>> clamp_elo(-12)
        0
    """
    return int(max(min_elo, min(max_elo, round(elo))))


def parse_rank(value: Any) -> Optional[RankName]:
    """``"n4"`` → RankName.N4; unknown values → None."""
    if isinstance(value, RankName):
        return value
    if value is None:
        return None
    try:
        return RankName(str(value).strip().upper())
    except ValueError:
        return None


def load_rank_bands(raw: Optional[Mapping[str, Sequence[int]]]) -> RankBands:
    """Build a band table from ``{"N5": [0, 1000], ...}``; missing ranks keep defaults."""
    bands = dict(DEFAULT_RANK_BANDS)
    for name, bounds in (raw or {}).items():
        rank = parse_rank(name)
        if rank is None or len(bounds) != 2:
            raise ConfigManagerError(f"Invalid rank band entry: {name}={bounds!r}")
        low, high = int(bounds[0]), int(bounds[1])
        if low > high:
            raise ConfigManagerError(f"Rank band {name} has min > max")
        bands[rank] = (low, high)
    return bands


def convert_elo_to_rank(elo: int, bands: Optional[RankBands] = None) -> RankName:
    """
    Map an ELO score to its rank tier.

    Out-of-range values are clamped first, so the result is always a tier.

    Example:
        >>> convert_elo_to_rank(1000)
        <RankName.N5: 'N5'>
        >>> convert_elo_to_rank(1001)
        <RankName.N4: 'N4'>
    """
    table = bands or DEFAULT_RANK_BANDS
    value = clamp_elo(elo)
    for rank in RANK_PRIORITY:
        low, high = table[rank]
        if low <= value <= high:
            return rank
    # Gaps between configured bands fall to the nearest lower tier
    for rank in RANK_PRIORITY:
        if value >= table[rank][0]:
            return rank
    return RankName.N5


def rank_bounds(rank: RankName, bands: Optional[RankBands] = None) -> Tuple[int, int]:
    return (bands or DEFAULT_RANK_BANDS)[rank]


def classify_rank_change(old_rank: RankName, new_rank: RankName) -> RankChange:
    """
    Example:
        >>> classify_rank_change(RankName.N5, RankName.N4)
        <RankChange.RANK_UP: 'RANK_UP'>
    """
    old_index = RANK_PRIORITY.index(old_rank)
    new_index = RANK_PRIORITY.index(new_rank)
    if new_index < old_index:
        return RankChange.RANK_UP
    if new_index > old_index:
        return RankChange.RANK_DOWN
    return RankChange.RANK_MAINTAIN


def calculate_percentage(count: int, total: int) -> float:
    """
    Share of ``count`` in ``total`` as a percentage rounded to 2 decimals.

    Example:
        >>> calculate_percentage(1, 3)
        33.33
        >>> calculate_percentage(0, 0)
        0.0
    """
    if total <= 0:
        return 0.0
    return round(count * 100.0 / total, 2)


# ============================================================================
# ELO delta calculators
# ============================================================================


class EloCalculator(Protocol):
    """Computes non-negative ELO deltas for a decided match."""

    def gain(self, winner_elo: int, loser_elo: int) -> int: ...

    def loss(self, loser_elo: int, winner_elo: float) -> int: ...


@dataclass(frozen=True, slots=True)
class LogisticEloCalculator:
    """
    Standard Elo: ``E(a, b) = 1 / (1 + 10 ** ((b - a) / scale))``.

    ``gain = round(K * (1 - E(winner, loser)))`` and
    ``loss = round(K * E(loser, winner))``.

    Example:
        >>> calc = LogisticEloCalculator(k_factor=32)
        >>> calc.gain(1000, 1000), calc.loss(1000, 1000)
        (16, 16)
    """

    k_factor: float = 32
    scale: float = 400

    def expected_score(self, rating_a: int, rating_b: int) -> float:
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / self.scale))

    def gain(self, winner_elo: int, loser_elo: int) -> int:
        return max(0, round(self.k_factor * (1 - self.expected_score(winner_elo, loser_elo))))

    def loss(self, loser_elo: int, winner_elo: float) -> int:
        return max(0, round(self.k_factor * self.expected_score(loser_elo, winner_elo)))


_CALCULATORS = {
    "logistic": LogisticEloCalculator,
}


def build_elo_calculator(config: Any) -> EloCalculator:
    """
    Build the calculator named by ``elo.formula``.

    Raises:
        ConfigManagerError: For an unknown formula or non-positive parameters
    """
    formula = str(config.get("elo.formula", "logistic")).lower()
    factory = _CALCULATORS.get(formula)
    if factory is None:
        raise ConfigManagerError(f"Unknown ELO formula '{formula}'")

    k_factor = float(config.get("elo.k_factor", 32))
    scale = float(config.get("elo.scale", 400))
    if k_factor <= 0 or scale <= 0:
        raise ConfigManagerError("elo.k_factor and elo.scale must be positive")
    return factory(k_factor=k_factor, scale=scale)
