"""
Session Quality Score (SQS) for landing pages.
"""
import re
from typing import Optional

from .aggregation import round_half_up

ENGAGEMENT_WEIGHT = 0.4
CONVERSION_WEIGHT = 0.3
PAGES_CAP = 5
PAGES_POINTS_PER_PAGE = 4
DURATION_CAP_MINUTES = 5
DURATION_POINTS_PER_MINUTE = 2

CONTENT_GROUPS = (
    ('Blog', re.compile(r'^/(blog|news|articles?|posts?)(/|$)', re.IGNORECASE)),
    ('Docs', re.compile(r'^/(docs?|documentation|guides?|learn)(/|$)', re.IGNORECASE)),
    ('Product', re.compile(r'^/(products?|features?|solutions?|shop)(/|$)', re.IGNORECASE)),
    ('Pricing', re.compile(r'^/(pricing|plans)(/|$)', re.IGNORECASE)),
    ('Support', re.compile(r'^/(support|help|faq|contact)(/|$)', re.IGNORECASE)),
)


def compute_sqs(engagement_rate: float,
                conversion_rate: float,
                pages_per_session: float,
                session_duration: float,
                bounce_rate: Optional[float] = None) -> float:
    """
    Compute the 0-100 Session Quality Score.

    Args:
        engagement_rate: Average engagement rate in percent (0-100), up to 40 points
        conversion_rate: Conversion rate in percent (0-100), up to 30 points
        pages_per_session: Average pages per session, capped at 5 (up to 20 points)
        session_duration: Average session duration in seconds, capped at 5 minutes (up to 10 points)
        bounce_rate: Accepted for callers passing the full page metrics; carries no weight

    Returns:
        Score clamped to [0, 100] and rounded to two decimals
    """
    pages_component = min(pages_per_session, PAGES_CAP) * PAGES_POINTS_PER_PAGE
    duration_component = min(session_duration / 60, DURATION_CAP_MINUTES) * DURATION_POINTS_PER_MINUTE
    engagement_component = engagement_rate * ENGAGEMENT_WEIGHT
    conversion_component = conversion_rate * CONVERSION_WEIGHT

    score = engagement_component + conversion_component + pages_component + duration_component
    return round_half_up(max(0.0, min(100.0, score)), 2)


def classify_content_group(page_path: str) -> str:
    """Content group of a page from the first path segment."""
    path = (page_path or '').split('?')[0]
    if path in ('', '/'):
        return 'Home'
    for group, pattern in CONTENT_GROUPS:
        if pattern.match(path):
            return group
    return 'Other'
