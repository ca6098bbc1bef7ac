"""
Rollup of individual LLM platform groups into a single "LLMs" group.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Any

from .aggregation import GroupAccumulator
from .platforms import LLM_PLATFORMS, LLM_ROLLUP_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMRollup:
    groups: Dict[str, GroupAccumulator]
    llm_breakdown: List[Dict[str, Any]] = field(default_factory=list)
    llm_sessions: float = 0.0


def rollup_llm_platforms(groups: Mapping[str, GroupAccumulator]) -> LLMRollup:
    """
    Merge the accumulators of all LLM platforms into one "LLMs" group.

    The individual platform groups are removed from the returned mapping so
    no session is counted twice; their session counts are kept in
    llm_breakdown. The "LLMs" group is only added when the platforms carry
    sessions. The input mapping is left untouched.

    Args:
        groups: Accumulators keyed by platform name

    Returns:
        LLMRollup with the new mapping, the per-platform breakdown and the LLM session total
    """
    rolled = GroupAccumulator()
    breakdown = []
    for platform in LLM_PLATFORMS:
        acc = groups.get(platform)
        if acc is None:
            continue
        rolled = rolled.merge(acc)
        breakdown.append({'platform': platform, 'sessions': acc.sessions})

    platform_sessions = rolled.sessions
    result = {key: acc for key, acc in groups.items() if key not in LLM_PLATFORMS}
    if platform_sessions > 0:
        if LLM_ROLLUP_NAME in result:
            # Already rolled up upstream; fold the new platforms into it
            rolled = result[LLM_ROLLUP_NAME].merge(rolled)
        result[LLM_ROLLUP_NAME] = rolled

    logger.debug(f"LLM rollup: {platform_sessions} sessions from {len(breakdown)} platforms")
    return LLMRollup(groups=result, llm_breakdown=breakdown, llm_sessions=platform_sessions)
