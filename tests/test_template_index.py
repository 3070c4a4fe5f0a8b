"""Tests for template index construction, shortlist and stats."""

from conftest import template_account

from packages.domain.coa_migration.schemas import CanonicalAccountType
from packages.domain.coa_migration.template_index import TemplateIndex


def codes(accounts):
    return [account.account_code for account in accounts]


class TestTemplateIndex:

    def test_lookup_maps(self, template_accounts):
        index = TemplateIndex(template_accounts)

        assert len(index) == 6
        assert codes(index.by_normalized_name["food cost"]) == ["5100000"]
        assert codes(index.by_alias["cogs food"]) == ["5100000"]
        assert codes(index.by_keyword["food"]) == ["4100000", "5100000"]
        assert codes(index.by_type["LIABILITY"]) == ["2100000"]

    def test_one_entry_per_account_under_a_key(self):
        account = template_account(
            "5100000", "Food Cost", CanonicalAccountType.COST_OF_SALES,
            keywords=["food", "Food", "FOOD!"],
        )

        index = TemplateIndex([account])

        assert codes(index.by_keyword["food"]) == ["5100000"]

    def test_blank_aliases_and_keywords_are_skipped(self):
        account = template_account(
            "7100000", "Rent Expense", CanonicalAccountType.INDIRECT_EXPENSE,
            keywords=["", "rent"], aliases=["--", "Occupancy Cost"],
        )

        index = TemplateIndex([account])

        assert "" not in index.by_alias
        assert "" not in index.by_keyword
        assert set(index.by_alias) == {"occupancy cost"}

    def test_empty_template(self):
        index = TemplateIndex([])

        assert len(index) == 0
        assert index.priority_shortlist() == []
        assert index.stats().total_accounts == 0


class TestPriorityShortlist:

    def test_ordered_by_priority_frequency_confidence(self, template_accounts):
        shortlist = TemplateIndex(template_accounts).priority_shortlist()

        assert codes(shortlist) == [
            "1100000",  # essential, very_high, 0.98
            "2100000",  # essential, very_high, 0.97
            "5100000",  # essential, very_high, 0.95
            "4100000",  # essential, high
            "6100000",  # recommended, high
            "7100000",  # recommended, medium
        ]

    def test_limit(self, template_accounts):
        assert len(TemplateIndex(template_accounts).priority_shortlist(limit=3)) == 3


def test_stats(template_accounts):
    stats = TemplateIndex(template_accounts).stats()

    assert stats.total_accounts == 6
    assert stats.categories["COST_OF_SALES"] == 1
    assert stats.priorities == {"essential": 4, "recommended": 2, "optional": 0}
    assert 0.9 < stats.average_confidence < 1.0
