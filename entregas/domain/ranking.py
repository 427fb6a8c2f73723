# SPDX-License-Identifier: Apache-2.0

"""
Driver ranking and statistics.

Ranks are awarded on three simultaneous minimums: completed deliveries,
average rating and acceptance rate. All thresholds are inclusive.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models.entities import DriverStats
from ..models.enums import DriverRank


@dataclass(frozen=True)
class RankThreshold:
    rank: DriverRank
    completed_deliveries: int
    average_rating: float
    acceptance_rate: float

    def is_met(self, completed: int, rating: float, acceptance: float) -> bool:
        return (
            completed >= self.completed_deliveries
            and rating >= self.average_rating
            and acceptance >= self.acceptance_rate
        )

    def as_requirements(self) -> Dict[str, float]:
        return {
            "completed_deliveries": self.completed_deliveries,
            "average_rating": self.average_rating,
            "acceptance_rate": self.acceptance_rate
        }


# Highest tier first
RANK_THRESHOLDS: List[RankThreshold] = [
    RankThreshold(DriverRank.DIAMANTE, 500, 4.8, 95),
    RankThreshold(DriverRank.PLATINA, 300, 4.5, 90),
    RankThreshold(DriverRank.OURO, 150, 4.2, 85),
    RankThreshold(DriverRank.PRATA, 50, 4.0, 80),
    RankThreshold(DriverRank.BRONZE, 10, 3.5, 70),
]

RANK_ORDER: List[DriverRank] = [
    DriverRank.INICIANTE,
    DriverRank.BRONZE,
    DriverRank.PRATA,
    DriverRank.OURO,
    DriverRank.PLATINA,
    DriverRank.DIAMANTE,
]

_THRESHOLD_BY_RANK = {threshold.rank: threshold for threshold in RANK_THRESHOLDS}


def rank_for(completed: int, average_rating: float, acceptance_rate: float) -> DriverRank:
    """Highest rank whose three minimums are all met."""
    for threshold in RANK_THRESHOLDS:
        if threshold.is_met(completed, average_rating, acceptance_rate):
            return threshold.rank
    return DriverRank.INICIANTE


def calculate_rank(stats: DriverStats) -> DriverRank:
    return rank_for(stats.completed_deliveries, stats.average_rating, stats.acceptance_rate)


def next_rank(rank: DriverRank) -> Optional[DriverRank]:
    """Rank right above ``rank``; None at the top tier."""
    index = RANK_ORDER.index(DriverRank(rank))
    if index + 1 >= len(RANK_ORDER):
        return None
    return RANK_ORDER[index + 1]


def next_rank_requirements(rank: DriverRank) -> Optional[Dict[str, float]]:
    """Thresholds of the next tier, or None for Diamante."""
    upcoming = next_rank(rank)
    if upcoming is None:
        return None
    return _THRESHOLD_BY_RANK[upcoming].as_requirements()


def completion_rate(stats: DriverStats) -> float:
    """Completed over total deliveries as a percentage with one decimal."""
    if stats.total_deliveries == 0:
        return 0.0
    return round(stats.completed_deliveries / stats.total_deliveries * 100, 1)


def acceptance_rate(accepted: int, rejected: int) -> float:
    """Accepted over offered orders as a percentage with one decimal."""
    offered = accepted + rejected
    if offered == 0:
        return 0.0
    return round(accepted / offered * 100, 1)


def rank_progress(stats: DriverStats) -> List[Dict[str, float]]:
    """
    Per-criterion progress towards the next rank.

    Returns an empty list for drivers already at the top tier. Percentages
    are capped at 100.
    """
    requirements = next_rank_requirements(calculate_rank(stats))
    if requirements is None:
        return []

    current = {
        "completed_deliveries": stats.completed_deliveries,
        "average_rating": stats.average_rating,
        "acceptance_rate": stats.acceptance_rate
    }

    progress = []
    for criterion, required in requirements.items():
        percent = 100.0 if required <= 0 else min(100.0, round(current[criterion] / required * 100, 1))
        progress.append({
            "criterion": criterion,
            "current": current[criterion],
            "required": required,
            "percent": percent
        })
    return progress


def new_driver_stats(driver_id: str) -> DriverStats:
    return DriverStats(driver_id=driver_id, created_by=driver_id, updated_by=driver_id)


def record_acceptance(stats: DriverStats) -> DriverStats:
    """Driver took an order; it now counts towards total deliveries."""
    accepted = stats.total_accepted + 1
    return stats.model_copy(update={
        "total_accepted": accepted,
        "total_deliveries": stats.total_deliveries + 1,
        "acceptance_rate": acceptance_rate(accepted, stats.total_rejected)
    })


def record_rejection(stats: DriverStats) -> DriverStats:
    rejected = stats.total_rejected + 1
    return stats.model_copy(update={
        "total_rejected": rejected,
        "acceptance_rate": acceptance_rate(stats.total_accepted, rejected)
    })


def record_completion(stats: DriverStats, fee: float, on_time: Optional[bool]) -> DriverStats:
    """Delivered order: count it, add the fee and track punctuality when known."""
    update = {
        "completed_deliveries": stats.completed_deliveries + 1,
        "total_earnings": round(stats.total_earnings + fee, 2)
    }
    if on_time is True:
        update["on_time_deliveries"] = stats.on_time_deliveries + 1
    elif on_time is False:
        update["late_deliveries"] = stats.late_deliveries + 1
    return stats.model_copy(update=update)


def record_cancellation(stats: DriverStats) -> DriverStats:
    return stats.model_copy(update={"cancelled_deliveries": stats.cancelled_deliveries + 1})


def record_rating(stats: DriverStats, driver_rating: int) -> DriverStats:
    """Fold a new score into the running average."""
    count = stats.rating_count + 1
    average = (stats.average_rating * stats.rating_count + driver_rating) / count
    return stats.model_copy(update={
        "rating_count": count,
        "average_rating": round(average, 2)
    })
