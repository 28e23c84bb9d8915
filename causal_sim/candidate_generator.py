"""
Candidate Relationship Generator

Boundary to the external reasoning service that proposes which markets a
frontier market would affect. Everything it returns is an unverified
claim; validation happens in candidate_validator.

Provides:
- CandidateGenerator: the narrow interface the graph builder depends on
- prepare_candidate_pool: rule-based pre-filter of the market pool
- parse_candidate_response: tolerant parser for service output
- LLMCandidateGenerator: OpenAI-compatible chat completion backend
- StaticCandidateGenerator: fixture-backed backend for tests/offline runs
"""

import json
import logging
import os
import re
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set

from causal_sim.models import (
    CandidateRelationship,
    Market,
    IMPACT_DIRECTIONS,
    TIME_LAGS,
)

logger = logging.getLogger(__name__)


# The service is asked for 3-5 relationships; never accept more
MAX_CANDIDATES = 5

DEFAULT_MIN_VOLUME = 100_000.0
DEFAULT_POOL_SIZE = 100
DEFAULT_MODEL = "gpt-4o-mini"

STOPWORDS = {
    "will", "the", "be", "in", "at", "to", "for", "of", "and", "or", "by",
    "on", "with", "before", "after", "than", "more", "less", "over", "under",
    "does", "this", "that", "from", "into", "what", "when", "which", "who",
}


class CandidateGenerator(Protocol):
    """Anything that can propose affected markets for a frontier market."""

    def generate_candidates(
        self,
        market: Market,
        outcome: str,
        pool: Sequence[Market]
    ) -> List[CandidateRelationship]:
        ...


def extract_keywords(text: str, limit: int = 7) -> List[str]:
    """
    Rule-based keyword extraction for pool matching.

    Keeps capitalised words and lowercase words of 4+ letters, minus
    stopwords, years and plain numbers.
    """
    keywords: List[str] = []

    for word in re.findall(r"\b[A-Z][a-zA-Z]+\b", text):
        lowered = word.lower()
        if lowered not in STOPWORDS and len(lowered) >= 3:
            keywords.append(lowered)

    for raw in text.lower().split():
        word = re.sub(r"[^a-z0-9]", "", raw)
        if len(word) < 4 or word in STOPWORDS:
            continue
        if re.fullmatch(r"\d+", word):
            continue
        keywords.append(word)

    # Preserve first-seen order
    seen: Set[str] = set()
    unique = []
    for kw in keywords:
        if kw not in seen:
            seen.add(kw)
            unique.append(kw)

    return unique[:limit]


def _matches_keyword(market: Market, keywords: Iterable[str]) -> bool:
    haystack = f"{market.question} {market.category or ''}"
    for kw in keywords:
        # Whole-word match so "ai" does not hit "Ukraine"
        if re.search(rf"\b{re.escape(kw)}\b", haystack, flags=re.IGNORECASE):
            return True
    return False


def prepare_candidate_pool(
    markets: Sequence[Market],
    trigger: Market,
    min_volume: float = DEFAULT_MIN_VOLUME,
    max_size: int = DEFAULT_POOL_SIZE
) -> List[Market]:
    """
    Select the markets offered to the reasoning service.

    Args:
        markets: All markets not yet in the graph
        trigger: Frontier market being expanded
        min_volume: Minimum traded volume
        max_size: Maximum pool size

    Returns:
        Keyword-related markets by volume, or the top markets by volume
        when nothing matches
    """
    major = [
        m for m in markets
        if m.volume >= min_volume and m.market_id != trigger.market_id
    ]
    by_volume = sorted(major, key=lambda m: m.volume, reverse=True)

    keywords = extract_keywords(trigger.question)
    related = [m for m in by_volume if _matches_keyword(m, keywords)]

    if related:
        pool = related[:max_size]
    else:
        logger.info(
            f"No keyword-related markets for '{trigger.question[:60]}', "
            f"falling back to top {max_size} by volume"
        )
        pool = by_volume[:max_size]

    logger.debug(f"Candidate pool: {len(pool)} of {len(markets)} markets (keywords={keywords})")
    return pool


def _coerce_strength(value) -> Optional[float]:
    try:
        strength = float(value)
    except (TypeError, ValueError):
        return None
    if strength != strength:  # NaN
        return None
    return max(0.0, min(1.0, strength))


def parse_candidate_response(
    content: Optional[str],
    pool_ids: Iterable[str]
) -> List[CandidateRelationship]:
    """
    Parse a reasoning-service response into candidate relationships.

    Expects a JSON object with a list under "causally_affected" (or
    "relationships"). Unparseable content yields no candidates. Entries
    referencing ids outside the pool, duplicates and malformed entries are
    dropped. Unknown time lags default to "days", unknown directions to
    "increase".

    Args:
        content: Raw response text
        pool_ids: Market ids the service was allowed to reference

    Returns:
        Up to MAX_CANDIDATES candidates, in response order
    """
    if not content:
        logger.warning("Empty candidate response")
        return []

    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Unparseable candidate response: {e}")
        return []

    if isinstance(data, dict):
        entries = data.get("causally_affected", data.get("relationships", []))
    elif isinstance(data, list):
        entries = data
    else:
        entries = []

    if not isinstance(entries, list):
        logger.warning(f"Candidate response list has unexpected type {type(entries).__name__}")
        return []

    allowed = set(pool_ids)
    seen: Set[str] = set()
    candidates: List[CandidateRelationship] = []

    for entry in entries:
        if not isinstance(entry, dict):
            continue

        market_id = entry.get("marketId", entry.get("market_id"))
        if market_id is None:
            continue
        market_id = str(market_id)

        if market_id not in allowed:
            logger.debug(f"Discarding candidate outside pool: {market_id}")
            continue
        if market_id in seen:
            continue

        strength = _coerce_strength(entry.get("strength"))
        if strength is None:
            continue

        time_lag = entry.get("timelag", entry.get("time_lag"))
        if time_lag not in TIME_LAGS:
            time_lag = "days"

        direction = entry.get("impactDirection", entry.get("impact_direction"))
        if direction not in IMPACT_DIRECTIONS:
            direction = "increase"

        seen.add(market_id)
        candidates.append(CandidateRelationship(
            target_market_id=market_id,
            reasoning=str(entry.get("reasoning", "")),
            time_lag=time_lag,
            strength=strength,
            impact_direction=direction
        ))

        if len(candidates) >= MAX_CANDIDATES:
            break

    return candidates


SYSTEM_PROMPT = (
    "You are an expert economist and political analyst who identifies "
    "causal relationships between prediction markets across domains."
)


def build_candidate_prompt(market: Market, outcome: str, pool: Sequence[Market]) -> str:
    """Prompt asking for 3-5 markets most causally affected by the trigger."""
    listing = "\n".join(
        f'{i + 1}. ID="{m.market_id}" {m.question}'
        for i, m in enumerate(pool)
    )

    return f"""TRIGGER EVENT: "{market.question}" resolves to "{outcome}"

Task: Identify 3-5 markets that would be MOST CAUSALLY AFFECTED by this trigger event.

Require a clear, direct mechanism. Exclude incremental variants of the same question,
tenuous multi-step reasoning and sentiment-only connections.

AVAILABLE MARKETS (use EXACT IDs):
{listing}

OUTPUT FORMAT (JSON):
{{
  "causally_affected": [
    {{
      "marketId": "EXACT_ID_FROM_LIST_ABOVE",
      "reasoning": "Concise explanation of the causal mechanism",
      "timelag": "immediate|hours|days|weeks",
      "impactDirection": "increase|decrease",
      "strength": 0.0-1.0
    }}
  ]
}}"""


class LLMCandidateGenerator:
    """
    Candidate generator backed by an OpenAI-compatible chat completion API.

    Client errors and malformed output yield no candidates.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        min_volume: float = DEFAULT_MIN_VOLUME,
        max_pool_size: int = DEFAULT_POOL_SIZE,
        client=None
    ):
        """
        Initialize generator.

        Args:
            model: Chat model name
            api_key: API key (default: OPENAI_API_KEY)
            base_url: Alternative endpoint (default: OPENAI_BASE_URL)
            timeout: Request timeout in seconds
            min_volume: Pool volume floor
            max_pool_size: Maximum markets offered per request
            client: Pre-built client (tests)
        """
        self.model = model
        self.timeout = timeout
        self.min_volume = min_volume
        self.max_pool_size = max_pool_size

        if client is None:
            from openai import OpenAI

            kwargs: dict = {
                "api_key": api_key or os.environ.get("OPENAI_API_KEY", ""),
                "timeout": timeout,
            }
            base_url = base_url or os.environ.get("OPENAI_BASE_URL")
            if base_url:
                kwargs["base_url"] = base_url
            client = OpenAI(**kwargs)

        self._client = client

    def generate_candidates(
        self,
        market: Market,
        outcome: str,
        pool: Sequence[Market]
    ) -> List[CandidateRelationship]:
        sampled = prepare_candidate_pool(pool, market, self.min_volume, self.max_pool_size)
        if not sampled:
            logger.warning(f"No markets to analyze for {market.market_id}")
            return []

        prompt = build_candidate_prompt(market, outcome, sampled)

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0.4,
                max_tokens=2000,
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"Candidate generation failed for {market.market_id}: {e}")
            return []

        candidates = parse_candidate_response(content, [m.market_id for m in sampled])
        logger.info(
            f"Reasoning service proposed {len(candidates)} candidates for "
            f"'{market.question[:60]}' → {outcome}"
        )
        return candidates


class StaticCandidateGenerator:
    """
    Returns fixed candidate lists keyed by source market id.

    Candidates referencing markets outside the supplied pool are dropped,
    mirroring the contract of a live generator.
    """

    def __init__(self, candidates_by_source: Dict[str, List[CandidateRelationship]]):
        self.candidates_by_source = candidates_by_source
        self.calls: List[str] = []

    def generate_candidates(
        self,
        market: Market,
        outcome: str,
        pool: Sequence[Market]
    ) -> List[CandidateRelationship]:
        self.calls.append(market.market_id)
        pool_ids = {m.market_id for m in pool}
        return [
            c for c in self.candidates_by_source.get(market.market_id, [])
            if c.target_market_id in pool_ids
        ]
