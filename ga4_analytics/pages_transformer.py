"""
Landing page view: per-page metrics, Session Quality Score and the LLM
platforms that sent traffic to each page.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple

from .aggregation import (
    GroupAccumulator,
    finalize_groups,
    round_half_up,
    safe_divide,
    total_sessions,
)
from .platforms import detect_llm_platform
from .report_schema import PAGES_LAYOUT, DecodedRow, decode_rows
from .session_quality import classify_content_group, compute_sqs
from .validation import reconcile_records

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageAccumulator:
    totals: GroupAccumulator = field(default_factory=GroupAccumulator)
    title: str = ''
    # (platform, sessions) pairs in first-seen order
    platform_sessions: Tuple[Tuple[str, float], ...] = ()

    def add_row(self, row: DecodedRow, platform: Optional[str]) -> 'PageAccumulator':
        platform_sessions = self.platform_sessions
        if platform:
            counts = dict(platform_sessions)
            counts[platform] = counts.get(platform, 0.0) + row.metric('sessions')
            platform_sessions = tuple(counts.items())
        return PageAccumulator(
            totals=self.totals.add_row(row.metrics),
            title=self.title or row.dim('page_title'),
            platform_sessions=platform_sessions,
        )

    @property
    def provider(self) -> Optional[str]:
        if not self.platform_sessions:
            return None
        # max() keeps the first platform on ties
        return max(self.platform_sessions, key=lambda item: item[1])[0]


def build_page_url(default_uri: Optional[str], page_path: str) -> str:
    if not default_uri:
        return page_path
    path = page_path if page_path.startswith('/') else f'/{page_path}'
    return default_uri.rstrip('/') + path


def _aggregate_pages(rows: List[DecodedRow], filter_llms: bool) -> Dict[str, PageAccumulator]:
    pages: Dict[str, PageAccumulator] = {}
    for row in rows:
        platform = detect_llm_platform(row.dim('source'), row.dim('referrer'))
        if filter_llms and platform is None:
            continue
        path = row.dim('page_path') or '/'
        pages[path] = pages.get(path, PageAccumulator()).add_row(row, platform)
    return pages


def transform_pages_data(ga4_response: Optional[Dict[str, Any]],
                         default_uri: Optional[str] = None,
                         filter_llms: bool = True) -> Dict[str, Any]:
    """
    Transform a pages report into per-page records.

    Args:
        ga4_response: GA4 response for PAGES_LAYOUT
        default_uri: Site URL of the property, prefixed to page paths
        filter_llms: Keep only rows whose referrer or source is an LLM platform

    Returns:
        Dict with pages (records sorted by sessions) and summary
    """
    rows = decode_rows(ga4_response, PAGES_LAYOUT)
    pages = _aggregate_pages(rows, filter_llms)

    groups = {path: page.totals for path, page in pages.items()}
    expected = total_sessions(groups)
    records, report = reconcile_records(finalize_groups(groups), expected, view='pages')

    result = []
    weighted_sqs = 0.0
    providers: Dict[str, float] = {}
    for record in records:
        page = pages[record.name]
        sqs = compute_sqs(
            record.engagement_rate,
            record.conversion_rate,
            record.pages_per_session,
            record.avg_session_duration,
            record.bounce_rate,
        )
        weighted_sqs += sqs * record.sessions
        for platform, sessions in page.platform_sessions:
            providers[platform] = providers.get(platform, 0.0) + sessions

        data = record.to_dict(label='page_path')
        data.update({
            'title': page.title or record.name,
            'url': build_page_url(default_uri, record.name),
            'sqs': sqs,
            'content_group': classify_content_group(record.name),
            'provider': page.provider,
            'platform_sessions': dict(page.platform_sessions),
        })
        result.append(data)

    top_provider = max(providers.items(), key=lambda item: item[1])[0] if providers else 'N/A'

    logger.info(f"Pages: {len(result)} pages, {expected} sessions "
                f"(rows={len(rows)}, filter_llms={filter_llms})")

    return {
        'pages': result,
        'summary': {
            'total_sessions': expected,
            'total_pages': len(result),
            'total_conversions': sum(r.conversions for r in records),
            'avg_sqs': round_half_up(safe_divide(weighted_sqs, expected), 2),
            'top_provider': top_provider,
            'validation': report.to_dict(),
        },
    }
