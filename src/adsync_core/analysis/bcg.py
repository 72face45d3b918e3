"""BCG-style growth/share quadrants for ad campaigns.

Market share is a campaign's ROAS relative to the cohort mean, in percent.
Growth comes from a pluggable strategy; the default is an engagement proxy
(CTR and conversion rate) because no per-campaign history is retained.
Results are recomputed on every call and never cached.
"""
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from ..schemas.metrics import Campaign


GROWTH_THRESHOLD = 10.0
SHARE_THRESHOLD = 100.0

CTR_WEIGHT = 10.0
CONVERSION_WEIGHT = 5.0

MIN_PERIOD_GROWTH = -50.0
MAX_PERIOD_GROWTH = 200.0


class BCGCategory(str, Enum):
    STARS = "stars"
    CASH_COWS = "cash_cows"
    QUESTION_MARKS = "question_marks"
    DOGS = "dogs"


class GrowthStrategy(Protocol):
    def growth_rate(self, campaign: Campaign) -> float: ...


class EngagementGrowth:
    """Momentum proxy: ctr * 10 + conversion_rate * 5 (both in percent)."""

    def growth_rate(self, campaign: Campaign) -> float:
        return campaign.ctr * CTR_WEIGHT + campaign.conversion_rate * CONVERSION_WEIGHT


class PeriodOverPeriodGrowth:
    """Revenue growth against the same campaign in a previous period.

    Growth is capped to [-50, 200] percent. Campaigns without previous
    revenue fall back to the engagement proxy.
    """

    def __init__(
        self,
        previous: Iterable[Campaign],
        fallback: Optional[GrowthStrategy] = None,
    ) -> None:
        self._previous_revenue = {c.campaign_id: c.revenue for c in previous}
        self.fallback = fallback or EngagementGrowth()

    def growth_rate(self, campaign: Campaign) -> float:
        previous = self._previous_revenue.get(campaign.campaign_id, 0.0)
        if previous <= 0:
            return self.fallback.growth_rate(campaign)
        growth = (campaign.revenue - previous) / previous * 100
        return max(MIN_PERIOD_GROWTH, min(MAX_PERIOD_GROWTH, growth))


@dataclass(frozen=True)
class BCGPosition:
    """Matrix coordinates and category of one campaign."""

    campaign_id: str
    title: str
    roas: float
    growth_rate: float
    market_share: float
    category: BCGCategory


def average_roas(cohort: Sequence[Campaign]) -> float:
    """Mean ROAS over the cohort; 1.0 for an empty cohort."""
    if not cohort:
        return 1.0
    return sum(c.roas for c in cohort) / len(cohort)


def market_share(campaign: Campaign, avg_roas: float) -> float:
    if avg_roas <= 0:
        return 0.0
    return campaign.roas / avg_roas * 100


def quadrant(growth_rate: float, share: float) -> BCGCategory:
    high_growth = growth_rate > GROWTH_THRESHOLD
    high_share = share > SHARE_THRESHOLD
    if high_growth and high_share:
        return BCGCategory.STARS
    if high_share:
        return BCGCategory.CASH_COWS
    if high_growth:
        return BCGCategory.QUESTION_MARKS
    return BCGCategory.DOGS


def classify(
    campaign: Campaign,
    cohort: Sequence[Campaign],
    strategy: Optional[GrowthStrategy] = None,
) -> BCGCategory:
    """Assign the campaign's quadrant relative to its cohort.

    Args:
        campaign: Campaign to classify
        cohort: All campaigns compared together (same accounts and range)
        strategy: Growth strategy; defaults to EngagementGrowth

    Returns:
        BCGCategory
    """
    strategy = strategy or EngagementGrowth()
    share = market_share(campaign, average_roas(cohort))
    return quadrant(strategy.growth_rate(campaign), share)


def classify_positions(
    campaigns: Sequence[Campaign], strategy: Optional[GrowthStrategy] = None
) -> list[BCGPosition]:
    """Classify every campaign against the whole list, keeping input order."""
    strategy = strategy or EngagementGrowth()
    avg = average_roas(campaigns)
    positions = []
    for campaign in campaigns:
        growth = strategy.growth_rate(campaign)
        share = market_share(campaign, avg)
        positions.append(
            BCGPosition(
                campaign_id=campaign.campaign_id,
                title=campaign.title,
                roas=round(campaign.roas, 2),
                growth_rate=round(growth, 2),
                market_share=round(share, 2),
                category=quadrant(growth, share),
            )
        )
    return positions


def classify_campaigns(
    campaigns: Sequence[Campaign], strategy: Optional[GrowthStrategy] = None
) -> dict[str, BCGCategory]:
    return {p.campaign_id: p.category for p in classify_positions(campaigns, strategy)}


def category_counts(positions: Iterable[BCGPosition]) -> dict[BCGCategory, int]:
    counts = {category: 0 for category in BCGCategory}
    for position in positions:
        counts[position.category] += 1
    return counts
