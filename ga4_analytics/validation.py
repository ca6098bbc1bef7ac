"""
Consistency checks for finalised group records.

The per-view check recomputes totals from the finalised records and heals
percentages that no longer add up to 100. The cross-view check only reports:
it compares LLM session totals between dashboard views.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Mapping, Optional, Sequence, Tuple

from .aggregation import GroupRecord, round_half_up, safe_divide
from .platforms import LLM_ROLLUP_NAME

logger = logging.getLogger(__name__)

SESSION_TOLERANCE = 1
PERCENTAGE_TOLERANCE = 0.1
PERCENTAGE_STEP = 0.01


@dataclass(frozen=True)
class ValidationReport:
    view: str
    expected_total: float
    final_total: float
    percentage_sum: float
    reconciled: bool = False
    issues: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'view': self.view,
            'expected_total': self.expected_total,
            'final_total': self.final_total,
            'percentage_sum': self.percentage_sum,
            'reconciled': self.reconciled,
            'issues': list(self.issues),
        }


def percentage_sum(records: Sequence[GroupRecord]) -> float:
    return round_half_up(sum(r.percentage for r in records), 2)


def recompute_percentages(records: Sequence[GroupRecord], total: float) -> List[GroupRecord]:
    """
    Recompute every percentage from the given total.

    Rounding each share to two decimals can leave the sum slightly off 100.
    When the gap exceeds the tolerance it is distributed in 0.01 steps over
    the records with the largest rounding remainders (ties keep record order).
    """
    if not records:
        return []
    raw = [safe_divide(r.sessions, total) * 100 for r in records]
    rounded = [round_half_up(value, 2) for value in raw]

    residual = round_half_up(100 - sum(rounded), 2) if total > 0 else 0.0
    if abs(residual) > PERCENTAGE_TOLERANCE:
        steps = int(round_half_up(abs(residual) / PERCENTAGE_STEP, 0))
        direction = 1 if residual > 0 else -1
        remainders = [value - r for value, r in zip(raw, rounded)]
        order = sorted(range(len(records)), key=lambda i: (-direction * remainders[i], i))
        for n in range(steps):
            idx = order[n % len(order)]
            rounded[idx] = round_half_up(rounded[idx] + direction * PERCENTAGE_STEP, 2)

    return [record.with_percentage(pct) for record, pct in zip(records, rounded)]


def reconcile_records(records: Sequence[GroupRecord],
                      expected_total: float,
                      view: str = '') -> Tuple[List[GroupRecord], ValidationReport]:
    """
    Cross-check finalised records against the independently computed total.

    Args:
        records: Finalised records of one view
        expected_total: Session total computed before percentages were assigned
        view: View name used in log messages

    Returns:
        Tuple of (records, report). Records are returned with recomputed
        percentages when the session totals diverge by more than one session
        or the percentages miss 100 by more than 0.1.
    """
    records = list(records)
    final_total = sum(r.sessions for r in records)
    pct_sum = percentage_sum(records)
    issues = []

    if abs(final_total - expected_total) > SESSION_TOLERANCE:
        issues.append(f'session total mismatch: records={final_total}, expected={expected_total}')
    if records and final_total > 0 and abs(pct_sum - 100) > PERCENTAGE_TOLERANCE:
        issues.append(f'percentages sum to {pct_sum}')

    if not issues:
        return records, ValidationReport(view, expected_total, final_total, pct_sum)

    logger.warning(f"[{view}] consistency check failed ({'; '.join(issues)}); "
                   f"recalculating percentages from {final_total} sessions")
    healed = recompute_percentages(records, final_total)
    report = ValidationReport(
        view=view,
        expected_total=expected_total,
        final_total=final_total,
        percentage_sum=percentage_sum(healed),
        reconciled=True,
        issues=tuple(issues),
    )
    return healed, report


def collect_llm_session_totals(views: Mapping[str, Optional[Dict[str, Any]]]) -> Dict[str, float]:
    """
    Extract the LLM session total reported by each dashboard view.

    Args:
        views: Transform outputs keyed by view name ('platform-split',
            'llm-platforms', 'pages', 'geo', 'devices'); missing views are skipped
    """
    totals: Dict[str, float] = {}
    platform_split = views.get('platform-split')
    if platform_split:
        llms = [p for p in platform_split.get('performance_data', []) if p.get('name') == LLM_ROLLUP_NAME]
        totals['platform-split'] = llms[0]['sessions'] if llms else 0.0
    llm_platforms = views.get('llm-platforms')
    if llm_platforms:
        totals['llm-platforms'] = llm_platforms.get('summary', {}).get('total_llm_sessions', 0.0)
    pages = views.get('pages')
    if pages:
        totals['pages'] = pages.get('summary', {}).get('total_sessions', 0.0)
    for name in ('geo', 'devices'):
        data = views.get(name)
        if data:
            totals[name] = data.get('total_sessions', 0.0)
    return totals


def verify_cross_view_consistency(totals: Mapping[str, float]) -> List[str]:
    """
    Compare LLM session totals between views.

    Returns:
        List of issue strings; empty when all totals lie within one session
    """
    if len(totals) < 2:
        return []
    highest = max(totals.values())
    lowest = min(totals.values())
    if highest - lowest <= SESSION_TOLERANCE:
        return []

    issues = [f'{name}: {value}' for name, value in totals.items()]
    logger.warning(f"Cross-view LLM session inconsistency (spread {highest - lowest}): {', '.join(issues)}")
    return issues
