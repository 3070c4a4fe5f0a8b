"""
Template Index - Lookup structures over a canonical account template

Built once per loaded template and queried many times during a batch.
Four parallel maps, each keyed by normalized text:

- by_normalized_name: "food cost"   → [Food Cost]
- by_keyword:         "food"        → [Food Cost, Food Sales, ...]
- by_alias:           "cogs food"   → [Food Cost]
- by_type:            "COST_OF_SALES" → [Food Cost, Beverage Cost, ...]

The index is never mutated after construction. If the template changes,
build a new one.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from packages.domain.coa_migration.schemas import TemplateAccount, TemplateStats
from packages.domain.coa_migration.text_utils import normalize

AccountMap = Dict[str, Tuple[TemplateAccount, ...]]

PRIORITY_RANK = {"essential": 0, "recommended": 1, "optional": 2}
FREQUENCY_RANK = {"very_high": 0, "high": 1, "medium": 2, "low": 3}


class TemplateIndex:
    """Read-only search index over a template's accounts"""

    def __init__(self, accounts: Iterable[TemplateAccount]):
        self.accounts: Tuple[TemplateAccount, ...] = tuple(accounts)

        names: Dict[str, List[TemplateAccount]] = defaultdict(list)
        keywords: Dict[str, List[TemplateAccount]] = defaultdict(list)
        aliases: Dict[str, List[TemplateAccount]] = defaultdict(list)
        types: Dict[str, List[TemplateAccount]] = defaultdict(list)

        for account in self.accounts:
            self._insert(names, normalize(account.account_name), account)

            for keyword in account.keywords:
                key = normalize(keyword)
                if key:
                    self._insert(keywords, key, account)

            for alias in account.aliases:
                key = normalize(alias)
                if key:
                    self._insert(aliases, key, account)

            self._insert(types, account.account_type.value, account)

        self.by_normalized_name: AccountMap = self._freeze(names)
        self.by_keyword: AccountMap = self._freeze(keywords)
        self.by_alias: AccountMap = self._freeze(aliases)
        self.by_type: AccountMap = self._freeze(types)

    def __len__(self) -> int:
        return len(self.accounts)

    @staticmethod
    def _insert(index: Dict[str, List[TemplateAccount]], key: str, account: TemplateAccount) -> None:
        # Set-union semantics: one entry per account code under a key
        bucket = index[key]
        if all(existing.account_code != account.account_code for existing in bucket):
            bucket.append(account)

    @staticmethod
    def _freeze(index: Dict[str, List[TemplateAccount]]) -> AccountMap:
        return {key: tuple(bucket) for key, bucket in index.items()}

    def priority_shortlist(self, limit: int = 10) -> List[TemplateAccount]:
        """
        Highest-priority accounts, used as the semantic oracle's candidate set.

        Ordered by priority, then usage frequency, then template confidence.
        Ties keep template order.
        """
        ranked = sorted(
            self.accounts,
            key=lambda account: (
                PRIORITY_RANK.get(account.metadata.priority, len(PRIORITY_RANK)),
                FREQUENCY_RANK.get(account.metadata.usage_frequency, len(FREQUENCY_RANK)),
                -account.metadata.confidence,
            ),
        )
        return ranked[:limit]

    def stats(self) -> TemplateStats:
        """Account counts by type and priority, plus mean template confidence."""
        categories: Dict[str, int] = {}
        priorities = {"essential": 0, "recommended": 0, "optional": 0}
        total_confidence = 0.0

        for account in self.accounts:
            account_type = account.account_type.value
            categories[account_type] = categories.get(account_type, 0) + 1

            if account.metadata.priority in priorities:
                priorities[account.metadata.priority] += 1

            total_confidence += account.metadata.confidence

        return TemplateStats(
            total_accounts=len(self.accounts),
            categories=categories,
            priorities=priorities,
            average_confidence=total_confidence / len(self.accounts) if self.accounts else 0.0,
        )
