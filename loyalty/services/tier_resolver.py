"""
Tier resolution.

Pure functions over an immutable, pre-sorted tier list. Callers read the
program's tiers once (ProgramService.get_tiers) and pass them in; nothing
here touches the database.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Tuple, Dict, Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierInfo:
    """Read-only snapshot of a LoyaltyTier row."""
    id: int
    name: str
    display_name: str
    min_points_required: Decimal
    points_multiplier: Decimal
    discount_percentage: Decimal

    @classmethod
    def from_model(cls, tier) -> 'TierInfo':
        return cls(
            id=tier.id,
            name=tier.name,
            display_name=tier.display_name or tier.name,
            min_points_required=Decimal(str(tier.min_points_required)),
            points_multiplier=Decimal(str(tier.points_multiplier)),
            discount_percentage=Decimal(str(tier.discount_percentage or 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'display_name': self.display_name,
            'min_points_required': float(self.min_points_required),
            'points_multiplier': float(self.points_multiplier),
            'discount_percentage': float(self.discount_percentage),
        }


def sort_tiers(tiers: Sequence[TierInfo]) -> Tuple[TierInfo, ...]:
    """
    Order tiers ascending by threshold.

    Ties are broken by id so that the later-inserted tier sorts last and
    therefore wins in resolve_tier.
    """
    ordered = tuple(sorted(tiers, key=lambda t: (t.min_points_required, t.id)))

    for lower, upper in zip(ordered, ordered[1:]):
        if lower.min_points_required == upper.min_points_required:
            logger.warning(
                'Tiers %s and %s share threshold %s; %s takes precedence',
                lower.name, upper.name, upper.min_points_required, upper.name
            )

    return ordered


def resolve_tier(tiers: Sequence[TierInfo], total_points) -> Optional[TierInfo]:
    """
    Return the highest tier whose threshold is met.

    Falls back to the lowest tier when nothing qualifies, and None when the
    program has no tiers. A single call may skip intermediate tiers.
    """
    ordered = sort_tiers(tiers)
    if not ordered:
        return None

    points = Decimal(str(total_points))
    resolved = ordered[0]
    for tier in ordered:
        if tier.min_points_required <= points:
            resolved = tier
        else:
            break

    return resolved


def find_tier(tiers: Sequence[TierInfo], tier_id: Optional[int]) -> Optional[TierInfo]:
    """Look up a tier snapshot by id."""
    if tier_id is None:
        return None
    for tier in tiers:
        if tier.id == tier_id:
            return tier
    return None


def next_tier_progress(tiers: Sequence[TierInfo], total_points) -> Dict[str, Any]:
    """Progress towards the first tier above the given point total."""
    points = Decimal(str(total_points))
    next_tier = None
    for tier in sort_tiers(tiers):
        if tier.min_points_required > points:
            next_tier = tier
            break

    if next_tier is None:
        return {
            'next_tier': None,
            'points_needed': 0.0,
            'progress_percentage': 100.0,
        }

    points_needed = next_tier.min_points_required - points
    progress = min(Decimal('100'), points / next_tier.min_points_required * 100)

    return {
        'next_tier': next_tier.to_dict(),
        'points_needed': float(points_needed),
        'progress_percentage': float(progress.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)),
    }
