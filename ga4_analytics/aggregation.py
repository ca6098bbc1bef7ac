"""
Session-weighted aggregation of GA4 rows into per-group records.

Rows are folded into immutable GroupAccumulator values keyed by a grouping
function (platform, country, device, page path). Rate metrics are weighted by
each row's sessions; counts are summed. Finalisation happens in two passes:
the grand total first, then per-group averages and shares.
"""
import math
from dataclasses import dataclass, asdict, replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Any

from .report_schema import DecodedRow

TREND_UP = 'up'
TREND_DOWN = 'down'
TREND_NEUTRAL = 'neutral'


def round_half_up(value: float, digits: int = 2) -> float:
    """Round like JavaScript's Math.round: halves go towards +infinity."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def safe_divide(numerator: float, denominator: float) -> float:
    """Division that yields 0.0 instead of raising or returning inf/nan."""
    if not denominator:
        return 0.0
    return numerator / denominator


def to_display_percent(rate: float) -> float:
    """GA4 decimal rate (0-1) -> percentage with two decimals."""
    return round_half_up(round_half_up(rate, 4) * 100, 2)


@dataclass(frozen=True)
class GroupAccumulator:
    """Running totals for one group. Never mutated; reducers return new values."""
    sessions: float = 0.0
    weighted_engagement_rate: float = 0.0
    weighted_bounce_rate: float = 0.0
    weighted_session_duration: float = 0.0
    weighted_pages_per_session: float = 0.0
    conversions: float = 0.0
    new_users: float = 0.0
    total_users: float = 0.0
    row_count: int = 0

    def add_row(self, metrics: Mapping[str, float]) -> 'GroupAccumulator':
        sessions = metrics.get('sessions', 0.0)
        return GroupAccumulator(
            sessions=self.sessions + sessions,
            weighted_engagement_rate=self.weighted_engagement_rate + metrics.get('engagement_rate', 0.0) * sessions,
            weighted_bounce_rate=self.weighted_bounce_rate + metrics.get('bounce_rate', 0.0) * sessions,
            weighted_session_duration=self.weighted_session_duration + metrics.get('avg_session_duration', 0.0) * sessions,
            weighted_pages_per_session=self.weighted_pages_per_session + metrics.get('pages_per_session', 0.0) * sessions,
            conversions=self.conversions + metrics.get('conversions', 0.0),
            new_users=self.new_users + metrics.get('new_users', 0.0),
            total_users=self.total_users + metrics.get('total_users', 0.0),
            row_count=self.row_count + 1,
        )

    def merge(self, other: 'GroupAccumulator') -> 'GroupAccumulator':
        return GroupAccumulator(
            sessions=self.sessions + other.sessions,
            weighted_engagement_rate=self.weighted_engagement_rate + other.weighted_engagement_rate,
            weighted_bounce_rate=self.weighted_bounce_rate + other.weighted_bounce_rate,
            weighted_session_duration=self.weighted_session_duration + other.weighted_session_duration,
            weighted_pages_per_session=self.weighted_pages_per_session + other.weighted_pages_per_session,
            conversions=self.conversions + other.conversions,
            new_users=self.new_users + other.new_users,
            total_users=self.total_users + other.total_users,
            row_count=self.row_count + other.row_count,
        )

    # Averages are always divided by the group's own sessions, never by row_count
    @property
    def engagement_rate(self) -> float:
        return safe_divide(self.weighted_engagement_rate, self.sessions)

    @property
    def bounce_rate(self) -> float:
        return safe_divide(self.weighted_bounce_rate, self.sessions)

    @property
    def avg_session_duration(self) -> float:
        return safe_divide(self.weighted_session_duration, self.sessions)

    @property
    def pages_per_session(self) -> float:
        return safe_divide(self.weighted_pages_per_session, self.sessions)


@dataclass(frozen=True)
class GroupRecord:
    """Finalised, display-ready metrics of one group."""
    name: str
    sessions: float
    percentage: float
    engagement_rate: float
    bounce_rate: float
    avg_session_duration: float
    pages_per_session: float
    conversions: float
    conversion_rate: float
    new_users: float
    returning_users: float
    share_change: float = 0.0
    absolute_change: float = 0.0
    trend: str = TREND_NEUTRAL

    def with_percentage(self, percentage: float) -> 'GroupRecord':
        return replace(self, percentage=percentage)

    def to_dict(self, label: Optional[str] = None) -> Dict[str, Any]:
        data = asdict(self)
        if label:
            data[label] = self.name
        return data


def aggregate_rows(rows: Iterable[DecodedRow],
                   key_fn: Callable[[DecodedRow], Optional[str]],
                   initial: Optional[Mapping[str, GroupAccumulator]] = None) -> Dict[str, GroupAccumulator]:
    """
    Fold decoded rows into accumulators keyed by key_fn(row).

    Rows for which key_fn returns None are skipped. Insertion order of the
    result follows the first appearance of each key.
    """
    groups: Dict[str, GroupAccumulator] = dict(initial or {})
    for row in rows:
        key = key_fn(row)
        if key is None:
            continue
        groups[key] = groups.get(key, GroupAccumulator()).add_row(row.metrics)
    return groups


def total_sessions(groups: Mapping[str, GroupAccumulator]) -> float:
    return sum(acc.sessions for acc in groups.values())


def compute_change(current: float, previous: float) -> Dict[str, Any]:
    """Relative (%) and absolute change against the previous period."""
    relative = round_half_up(safe_divide(current - previous, previous) * 100, 2) if previous > 0 else 0.0
    if relative > 0:
        trend = TREND_UP
    elif relative < 0:
        trend = TREND_DOWN
    else:
        trend = TREND_NEUTRAL
    return {
        'share_change': relative,
        'absolute_change': current - previous,
        'trend': trend,
    }


def finalize_group(name: str,
                   acc: GroupAccumulator,
                   grand_total: float,
                   previous_sessions: float = 0.0) -> GroupRecord:
    """
    Turn one accumulator into a GroupRecord.

    Args:
        name: Display name of the group
        acc: Accumulated totals of the group
        grand_total: Sessions across all finalised groups (percentage denominator)
        previous_sessions: Sessions of the same group in the comparison period

    Returns:
        GroupRecord with rates as percentages rounded to two decimals
    """
    change = compute_change(acc.sessions, previous_sessions)
    return GroupRecord(
        name=name,
        sessions=acc.sessions,
        percentage=round_half_up(safe_divide(acc.sessions, grand_total) * 100, 2),
        engagement_rate=to_display_percent(acc.engagement_rate),
        bounce_rate=to_display_percent(acc.bounce_rate),
        avg_session_duration=round_half_up(acc.avg_session_duration, 2),
        pages_per_session=round_half_up(acc.pages_per_session, 2),
        conversions=acc.conversions,
        conversion_rate=round_half_up(safe_divide(acc.conversions, acc.sessions) * 100, 2),
        new_users=acc.new_users,
        returning_users=acc.total_users - acc.new_users,
        share_change=change['share_change'],
        absolute_change=change['absolute_change'],
        trend=change['trend'],
    )


def sort_records(records: Iterable[GroupRecord]) -> List[GroupRecord]:
    """Sessions descending, name ascending on ties."""
    return sorted(records, key=lambda r: (-r.sessions, r.name))


def finalize_groups(groups: Mapping[str, GroupAccumulator],
                    comparison: Optional[Mapping[str, GroupAccumulator]] = None,
                    name_fn: Callable[[str], str] = lambda key: key) -> List[GroupRecord]:
    """
    Finalise every group of a mapping.

    The grand total is computed over all groups before any percentage is
    assigned. Comparison accumulators are looked up by the same key.
    """
    comparison = comparison or {}
    grand_total = total_sessions(groups)
    records = []
    for key, acc in groups.items():
        previous = comparison.get(key)
        records.append(finalize_group(name_fn(key), acc, grand_total, previous.sessions if previous else 0.0))
    return sort_records(records)
