"""
Template Matcher - Multi-strategy matching of legacy accounts to a template

Cascade (each strategy contributes zero or more candidates):
1. Exact:    normalized name equals a template name       → score 100
2. Alias:    exact alias (90) or alias similarity > 0.8   → score sim×85
3. Fuzzy:    name similarity > 0.7                        → score sim×80
4. Keyword:  shared keywords, 60 + 10 per extra keyword
5. Semantic oracle (only when 1-4 found nothing, or the best is below 0.75)

Candidates are deduplicated by account code (highest score wins), ranked
by score then confidence, and capped at 5.

Example:
- "COGS - Food" vs template {Food Cost, aliases: ["COGS - Food"]}
  → alias match, score 90, confidence 0.95
"""
import asyncio
from typing import Dict, List, Optional

import structlog

from packages.common.metrics import oracle_calls_total
from packages.domain.coa_migration.schemas import (
    MatchCandidate,
    MatchRequest,
    MatchStrategy,
    OracleCandidate,
    OracleRequest,
)
from packages.domain.coa_migration.semantic_oracle import SemanticOracle, usable_verdict
from packages.domain.coa_migration.template_index import TemplateIndex
from packages.domain.coa_migration.text_utils import keywords, normalize, similarity

logger = structlog.get_logger()


class TemplateMatcher:
    """
    Matches legacy account names against a template index.

    Usage:
        matcher = TemplateMatcher(TemplateIndex(template_accounts), oracle=oracle)
        candidates = await matcher.match(MatchRequest(name="Cash in Bank"))
        best = candidates[0] if candidates else None
    """

    MAX_RESULTS = 5

    EXACT_SCORE = 100.0
    ALIAS_EXACT_SCORE = 90.0
    ALIAS_EXACT_CONFIDENCE = 0.95
    ALIAS_SIMILARITY_THRESHOLD = 0.8
    FUZZY_SIMILARITY_THRESHOLD = 0.7
    KEYWORD_BASE_SCORE = 60.0
    KEYWORD_BONUS = 10.0
    KEYWORD_CONFIDENCE = 0.8

    # Oracle is consulted only when the best rule-based match is weaker than this
    ORACLE_TRIGGER_CONFIDENCE = 0.75
    ORACLE_MAX_CANDIDATES = 10

    def __init__(
        self,
        index: TemplateIndex,
        oracle: Optional[SemanticOracle] = None,
        oracle_timeout: float = 10.0,
    ):
        self.index = index
        self.oracle = oracle
        self.oracle_timeout = oracle_timeout

    async def match(self, request: MatchRequest) -> List[MatchCandidate]:
        """
        Find the best template accounts for a legacy account.

        Args:
            request: Legacy name plus optional type/description

        Returns:
            Up to 5 candidates, best first. Empty if the template is empty
            or nothing matched.
        """
        if not self.index.accounts:
            return []

        normalized_input = normalize(request.name)

        candidates: List[MatchCandidate] = []
        candidates.extend(self._find_exact_matches(normalized_input))
        candidates.extend(self._find_alias_matches(normalized_input))
        candidates.extend(self._find_fuzzy_matches(normalized_input))
        candidates.extend(self._find_keyword_matches(request.name))

        ranked = self._rank_and_deduplicate(candidates)

        if self.oracle is not None and (
            not ranked or ranked[0].confidence < self.ORACLE_TRIGGER_CONFIDENCE
        ):
            ranked = self._rank_and_deduplicate(ranked + await self._find_oracle_matches(request))

        logger.debug("template_match_complete",
                     name=request.name,
                     candidates=len(ranked),
                     best_strategy=ranked[0].strategy.value if ranked else None,
                     best_score=ranked[0].score if ranked else None)

        return ranked[:self.MAX_RESULTS]

    def _find_exact_matches(self, normalized_input: str) -> List[MatchCandidate]:
        return [
            MatchCandidate(
                account=account,
                confidence=1.0,
                strategy=MatchStrategy.EXACT,
                rationale="Exact name match with template account",
                score=self.EXACT_SCORE,
            )
            for account in self.index.by_normalized_name.get(normalized_input, ())
        ]

    def _find_alias_matches(self, normalized_input: str) -> List[MatchCandidate]:
        matches = []

        for account in self.index.by_alias.get(normalized_input, ()):
            matching_alias = next(
                (alias for alias in account.aliases if normalize(alias) == normalized_input),
                normalized_input,
            )
            matches.append(MatchCandidate(
                account=account,
                confidence=self.ALIAS_EXACT_CONFIDENCE,
                strategy=MatchStrategy.ALIAS,
                rationale=f'Exact alias match: "{matching_alias}"',
                score=self.ALIAS_EXACT_SCORE,
            ))

        for account in self.index.accounts:
            for alias in account.aliases:
                normalized_alias = normalize(alias)
                if not normalized_alias:
                    continue
                score = similarity(normalized_input, normalized_alias)
                if score > self.ALIAS_SIMILARITY_THRESHOLD:
                    matches.append(MatchCandidate(
                        account=account,
                        confidence=score * 0.9,
                        strategy=MatchStrategy.ALIAS,
                        rationale=f'{round(score * 100)}% alias similarity: "{alias}"',
                        score=score * 85,
                    ))

        return matches

    def _find_fuzzy_matches(self, normalized_input: str) -> List[MatchCandidate]:
        matches = []

        for account in self.index.accounts:
            normalized_name = normalize(account.account_name)
            if not normalized_name:
                continue
            score = similarity(normalized_input, normalized_name)
            if score > self.FUZZY_SIMILARITY_THRESHOLD:
                matches.append(MatchCandidate(
                    account=account,
                    confidence=score,
                    strategy=MatchStrategy.FUZZY,
                    rationale=f'{round(score * 100)}% name similarity: "{account.account_name}"',
                    score=score * 80,
                ))

        return matches

    def _find_keyword_matches(self, name: str) -> List[MatchCandidate]:
        # Keyed by account code so multi-keyword overlap accumulates
        matches: Dict[str, MatchCandidate] = {}

        for keyword in keywords(name):
            for account in self.index.by_keyword.get(keyword, ()):
                existing = matches.get(account.account_code)
                if existing:
                    existing.score += self.KEYWORD_BONUS
                    existing.rationale += f', "{keyword}"'
                else:
                    matches[account.account_code] = MatchCandidate(
                        account=account,
                        confidence=self.KEYWORD_CONFIDENCE,
                        strategy=MatchStrategy.KEYWORD,
                        rationale=f'Keyword match: "{keyword}"',
                        score=self.KEYWORD_BASE_SCORE,
                    )

        return list(matches.values())

    async def _find_oracle_matches(self, request: MatchRequest) -> List[MatchCandidate]:
        """
        Ask the semantic oracle to choose among the template's top accounts.

        Timeouts and failures mean "no verdict" and yield no candidates.
        """
        shortlist = self.index.priority_shortlist(self.ORACLE_MAX_CANDIDATES)
        oracle_request = OracleRequest(
            legacy_name=request.name,
            legacy_type=request.type,
            legacy_description=request.description,
            candidates=[
                OracleCandidate(
                    index=i,
                    name=account.account_name,
                    type=account.account_type.value,
                    description=account.description,
                    keywords=list(account.keywords),
                )
                for i, account in enumerate(shortlist)
            ],
        )

        try:
            verdict = await asyncio.wait_for(
                self.oracle.select(oracle_request),
                timeout=self.oracle_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("semantic_oracle_timeout",
                           name=request.name,
                           timeout_seconds=self.oracle_timeout)
            oracle_calls_total.labels(outcome="timeout").inc()
            return []
        except Exception as e:
            logger.error("semantic_oracle_failed",
                         name=request.name,
                         error=str(e),
                         exc_info=True)
            oracle_calls_total.labels(outcome="error").inc()
            return []

        verdict = usable_verdict(verdict, len(shortlist))
        if verdict is None:
            return []

        account = shortlist[verdict.selected_index]
        return [MatchCandidate(
            account=account,
            confidence=verdict.confidence,
            strategy=MatchStrategy.SEMANTIC_ORACLE,
            rationale=f"AI semantic match: {verdict.rationale}",
            score=verdict.confidence * 100,
        )]

    @staticmethod
    def _rank_and_deduplicate(candidates: List[MatchCandidate]) -> List[MatchCandidate]:
        """Keep the best-scoring candidate per account code; sort by score, then confidence."""
        unique: Dict[str, MatchCandidate] = {}

        for candidate in candidates:
            existing = unique.get(candidate.account.account_code)
            if existing is None or candidate.score > existing.score:
                unique[candidate.account.account_code] = candidate

        return sorted(unique.values(), key=lambda c: (c.score, c.confidence), reverse=True)
