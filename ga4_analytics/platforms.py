"""
Traffic source classification for GA4 rows: LLM platforms and standard channels.
"""
import re
from typing import Optional, Tuple, Pattern

# Order matters: the first matching platform wins.
LLM_PATTERNS: Tuple[Tuple[str, Pattern], ...] = (
    ('ChatGPT', re.compile(r'(chatgpt|openai\.com|chat\.openai)', re.IGNORECASE)),
    ('Claude', re.compile(r'(claude|anthropic)', re.IGNORECASE)),
    ('Gemini', re.compile(r'(gemini|bard|google\s*ai)', re.IGNORECASE)),
    ('Perplexity', re.compile(r'perplexity', re.IGNORECASE)),
    ('Copilot', re.compile(r'copilot', re.IGNORECASE)),
    ('Grok', re.compile(r'(grok|xai)', re.IGNORECASE)),
    ('Poe', re.compile(r'poe', re.IGNORECASE)),
    ('Character.ai', re.compile(r'character\.ai', re.IGNORECASE)),
)

LLM_PLATFORMS: Tuple[str, ...] = tuple(name for name, _ in LLM_PATTERNS)

LLM_ROLLUP_NAME = 'LLMs'

# Medium -> channel, checked after the LLM patterns
MEDIUM_TO_CHANNEL = {
    'organic': 'organic',
    'cpc': 'paid',
    'paid': 'paid',
    'referral': 'referral',
    'email': 'email',
    'social': 'social',
}

DIRECT_SOURCE = '(direct)'

# Pie chart colours keyed by lower-cased display name
PLATFORM_COLORS = {
    'organic': '#10B981',
    'direct': '#EF4444',
    'referral': '#F59E0B',
    'llms': '#06B6D4',
    'other': '#6B7280',
    'social': '#F97316',
    'email': '#14B8A6',
    'paid': '#8B5CF6',
}
DEFAULT_PLATFORM_COLOR = '#6B7280'

LLM_DOMAINS = {
    'ChatGPT': 'chatgpt.com',
    'Claude': 'claude.ai',
    'Gemini': 'gemini.google.com',
    'Perplexity': 'perplexity.ai',
    'Copilot': 'copilot.microsoft.com',
    'Grok': 'x.com',
    'Poe': 'poe.com',
    'Character.ai': 'character.ai',
}

FAVICON_URL = 'https://www.google.com/s2/favicons?domain={domain}&sz=32'


def _match_llm(value: str) -> Optional[str]:
    for platform, pattern in LLM_PATTERNS:
        if pattern.search(value):
            return platform
    return None


def detect_llm_platform(source: Optional[str], referrer: Optional[str] = None) -> Optional[str]:
    """
    Return the LLM platform behind a session, or None for non-LLM traffic.

    The referrer is checked first since it is the most accurate signal; the
    session source is only consulted when the referrer does not match.
    """
    if referrer:
        platform = _match_llm(referrer)
        if platform:
            return platform
    if source:
        return _match_llm(source)
    return None


def detect_platform(source: Optional[str], medium: Optional[str], referrer: Optional[str] = None) -> str:
    """
    Classify a traffic row into a platform name.

    Args:
        source: sessionSource value (may be None)
        medium: sessionMedium value (may be None)
        referrer: pageReferrer value (may be None)

    Returns:
        One of the LLM platform names, or organic/paid/referral/email/social/direct/other.
    """
    llm_platform = detect_llm_platform(source, referrer)
    if llm_platform:
        return llm_platform

    medium_lower = (medium or '').lower()
    if medium_lower in MEDIUM_TO_CHANNEL:
        return MEDIUM_TO_CHANNEL[medium_lower]
    if (source or '').lower() == DIRECT_SOURCE:
        return 'direct'
    return 'other'


def is_llm_platform(name: str) -> bool:
    return name in LLM_PLATFORMS


def get_llm_filter_regex() -> str:
    """Single alternation of all LLM patterns, for GA4 PARTIAL_REGEXP filters."""
    return '|'.join(pattern.pattern for _, pattern in LLM_PATTERNS)


def format_platform_name(platform: str) -> str:
    """Upper-case the first letter: 'organic' -> 'Organic', 'LLMs' stays as is."""
    if not platform:
        return platform
    return platform[0].upper() + platform[1:]


def get_platform_color(name: str) -> str:
    return PLATFORM_COLORS.get((name or '').lower(), DEFAULT_PLATFORM_COLOR)


def get_platform_favicon(platform: str) -> str:
    domain = LLM_DOMAINS.get(platform, 'google.com')
    return FAVICON_URL.format(domain=domain)