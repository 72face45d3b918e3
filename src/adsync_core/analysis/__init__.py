"""Campaign analysis."""
from .bcg import (
    BCGCategory,
    BCGPosition,
    EngagementGrowth,
    GrowthStrategy,
    PeriodOverPeriodGrowth,
    category_counts,
    classify,
    classify_campaigns,
    classify_positions,
)

__all__ = [
    "BCGCategory",
    "BCGPosition",
    "EngagementGrowth",
    "GrowthStrategy",
    "PeriodOverPeriodGrowth",
    "category_counts",
    "classify",
    "classify_campaigns",
    "classify_positions",
]
