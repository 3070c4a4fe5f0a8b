"""Tests for the migration service: cascade, conflicts, strategies and modes."""

from decimal import Decimal

import pytest
from conftest import FakeOracle, FakeRepository

from packages.domain.coa_migration.errors import (
    BulkCreationError,
    MigrationConflictError,
    MigrationValidationError,
    OrganizationNotFoundError,
)
from packages.domain.coa_migration.migration_service import (
    MigrationBatch,
    MigrationService,
    confidence_bucket,
)
from packages.domain.coa_migration.schemas import (
    CanonicalAccountType,
    ConflictResolution,
    LegacyAccount,
    MappingStatus,
    MatchCandidate,
    MatchStrategy,
    MappingStrategy,
    MigrationExecution,
    MigrationMode,
    MigrationRequest,
    MigrationResult,
    OracleVerdict,
    ResolutionSource,
)
from packages.domain.coa_migration.template_matcher import TemplateMatcher


def legacy(code, name, account_type=None, **kwargs):
    return LegacyAccount(original_code=code, original_name=name, original_type=account_type, **kwargs)


def migration_request(accounts, **kwargs):
    kwargs.setdefault("mapping_strategy", MappingStrategy.NAME_BASED)
    return MigrationRequest(organization_id="org_123", accounts=accounts, **kwargs)


def by_code(result):
    return {mapped.original_account.original_code: mapped for mapped in result.mapped_accounts}


# Template match, classifier fallback, and default-rule review in one batch
MIXED_BATCH = [
    legacy("1010", "Food Purchases", "Expense"),
    legacy("1500", "Delivery Van", "Asset", balance=Decimal("1500.00")),
    legacy("3000", "Misc Item"),
]


class TestMigrationBatch:

    def test_reserve_is_single_claim(self):
        batch = MigrationBatch({"1001000"})

        assert batch.reserve("1001000") is False
        assert batch.reserve("2001000") is True
        assert batch.reserve("2001000") is False

    def test_per_type_sequence(self):
        batch = MigrationBatch(set())

        assert batch.next_sequence(CanonicalAccountType.ASSET) == 1
        assert batch.next_sequence(CanonicalAccountType.ASSET) == 2
        assert batch.next_sequence(CanonicalAccountType.EQUITY) == 1

    def test_current_sequence_does_not_advance(self):
        batch = MigrationBatch(set())

        assert batch.current_sequence(CanonicalAccountType.ASSET) == 1
        batch.next_sequence(CanonicalAccountType.ASSET)
        batch.next_sequence(CanonicalAccountType.ASSET)

        assert batch.current_sequence(CanonicalAccountType.ASSET) == 2
        assert batch.next_sequence(CanonicalAccountType.ASSET) == 3


class TestValidation:

    @pytest.mark.parametrize("count", [0, 501])
    async def test_batch_size_rejected_before_any_work(self, fake_repository, count):
        accounts = [legacy(str(1000 + i), f"Account {i}") for i in range(count)]

        with pytest.raises(MigrationValidationError):
            await MigrationService(fake_repository).preview(migration_request(accounts))

        assert fake_repository.calls == []

    async def test_configurable_batch_limit(self, fake_repository):
        service = MigrationService(fake_repository, max_accounts=2)

        with pytest.raises(MigrationValidationError, match="Maximum 2 accounts"):
            await service.preview(migration_request(MIXED_BATCH))

    async def test_blank_organization(self, fake_repository):
        request = MigrationRequest(organization_id="  ", accounts=MIXED_BATCH)

        with pytest.raises(MigrationValidationError):
            await MigrationService(fake_repository).preview(request)

    async def test_unknown_organization(self, fake_repository):
        request = MigrationRequest(organization_id="org_missing", accounts=MIXED_BATCH)

        with pytest.raises(OrganizationNotFoundError):
            await MigrationService(fake_repository).preview(request)

        assert "get_existing_codes" not in fake_repository.calls


class TestPreview:

    async def test_cascade(self, fake_repository):
        result = await MigrationService(fake_repository).preview(migration_request(MIXED_BATCH))
        mapped = by_code(result)

        food = mapped["1010"]
        assert food.status == MappingStatus.READY
        assert food.resolution_source == ResolutionSource.TEMPLATE
        assert food.suggested_mapping.account_code == "5100000"
        assert food.suggested_mapping.account_name == "Food Cost"
        assert food.suggested_mapping.confidence == 0.95

        van = mapped["1500"]
        assert van.status == MappingStatus.READY
        assert van.resolution_source == ResolutionSource.CLASSIFIER
        assert van.suggested_mapping.account_type == CanonicalAccountType.ASSET
        assert van.suggested_mapping.account_code == "1001000"
        assert van.suggested_mapping.description == "Migrated from 1500 - Delivery Van"

        misc = mapped["3000"]
        assert misc.status == MappingStatus.MANUAL_REVIEW
        assert misc.suggested_mapping.account_code == "6001000"
        assert misc.suggested_mapping.confidence == 0.50
        assert misc.suggested_mapping.rationale == "Default mapping - requires manual review"

    async def test_counts_and_summary(self, fake_repository):
        result = await MigrationService(fake_repository).preview(migration_request(MIXED_BATCH))

        assert (result.total_accounts, result.mapped, result.conflicts, result.manual_review) == (3, 2, 0, 1)
        assert result.summary.by_original_type == {"Expense": 1, "Asset": 1, "Unknown": 1}
        assert result.summary.by_new_type == {"COST_OF_SALES": 1, "ASSET": 1, "DIRECT_EXPENSE": 1}
        assert result.summary.confidence_distribution == {"High (90%+)": 2, "Low (<70%)": 1}

    async def test_preview_never_writes(self, fake_repository):
        await MigrationService(fake_repository).preview(migration_request(MIXED_BATCH))

        assert "bulk_create" not in fake_repository.calls
        assert fake_repository.created == []

    async def test_run_dispatches_on_mode(self, fake_repository):
        service = MigrationService(fake_repository)

        preview = await service.run(migration_request(MIXED_BATCH))
        execution = await service.run(migration_request(MIXED_BATCH, migration_mode=MigrationMode.EXECUTE))

        assert isinstance(preview, MigrationResult)
        assert isinstance(execution, MigrationExecution)

    async def test_fallback_codes_unique_within_batch(self, fake_repository):
        accounts = [
            legacy("1500", "Delivery Van", "Asset"),
            legacy("1510", "Forklift", "Asset"),
            legacy("1520", "Office Building", "Asset"),
        ]

        result = await MigrationService(fake_repository).preview(migration_request(accounts))

        assert [m.suggested_mapping.account_code for m in result.mapped_accounts] == [
            "1001000", "1002000", "1003000",
        ]

    async def test_allocator_avoids_existing_codes(self, template_accounts):
        repository = FakeRepository(template=template_accounts, existing_codes={"1001000"})

        result = await MigrationService(repository).preview(
            migration_request([legacy("1500", "Delivery Van", "Asset")]))

        mapped = result.mapped_accounts[0]
        assert mapped.status == MappingStatus.READY
        assert mapped.suggested_mapping.account_code == "1001001"

    async def test_business_type_selects_template(self, fake_repository):
        await MigrationService(fake_repository, default_business_type="cafe").preview(
            migration_request(MIXED_BATCH))
        await MigrationService(fake_repository).preview(
            migration_request(MIXED_BATCH, business_type="bakery"))

        assert fake_repository.template_requests == ["cafe", "bakery"]


class TestOverrides:

    async def test_override_applied(self, fake_repository):
        request = migration_request(
            [legacy("1010", "Old Cash Box", description="Drawer float")],
            custom_mappings={"1010": "1999999"},
        )

        result = await MigrationService(fake_repository).preview(request)

        mapped = result.mapped_accounts[0]
        assert mapped.status == MappingStatus.READY
        assert mapped.resolution_source == ResolutionSource.OVERRIDE
        assert mapped.suggested_mapping.account_code == "1999999"
        assert mapped.suggested_mapping.account_type == CanonicalAccountType.ASSET
        assert mapped.suggested_mapping.confidence == 1.0
        assert mapped.suggested_mapping.rationale == "Custom mapping provided by user"
        assert mapped.suggested_mapping.description == "Drawer float"

    async def test_override_to_existing_code_conflicts(self, template_accounts):
        repository = FakeRepository(template=template_accounts, existing_codes={"2100500"})
        request = migration_request(
            [
                legacy("1010", "Old Cash Box"),
                legacy("2000", "Trade Payables"),
                legacy("1500", "Delivery Van", "Asset"),
            ],
            custom_mappings={"1010": "2100500"},
        )

        result = await MigrationService(repository).preview(request)
        mapped = by_code(result)

        assert mapped["1010"].status == MappingStatus.CONFLICT
        assert mapped["1010"].conflicts == ["Account code already exists"]
        assert mapped["2000"].status == MappingStatus.READY
        assert mapped["2000"].suggested_mapping.account_code == "2100000"
        assert mapped["1500"].status == MappingStatus.READY
        assert result.conflicts == 1


class TestConflicts:

    @pytest.fixture
    def conflicting_repository(self, template_accounts):
        return FakeRepository(template=template_accounts, existing_codes={"5100000"})

    async def test_template_code_already_taken(self, conflicting_repository):
        result = await MigrationService(conflicting_repository).preview(
            migration_request([legacy("1010", "Food Purchases", "Expense")]))

        mapped = result.mapped_accounts[0]
        assert mapped.status == MappingStatus.CONFLICT
        assert mapped.conflicts == ["Account code already exists"]
        assert mapped.suggested_mapping.account_code == "5100000"

    async def test_same_template_target_twice_in_batch(self, fake_repository):
        result = await MigrationService(fake_repository).preview(migration_request([
            legacy("1010", "Food Purchases"),
            legacy("1011", "COGS - Food"),
        ]))
        mapped = by_code(result)

        assert mapped["1010"].status == MappingStatus.READY
        assert mapped["1011"].status == MappingStatus.CONFLICT

    async def test_rename(self, conflicting_repository):
        result = await MigrationService(conflicting_repository).preview(migration_request(
            [legacy("1010", "Food Purchases", "Expense")],
            conflict_resolution=ConflictResolution.RENAME,
        ))

        mapped = result.mapped_accounts[0]
        assert mapped.status == MappingStatus.READY
        assert mapped.suggested_mapping.account_code == "5001000"
        assert mapped.conflicts == ["Renamed from 5100000 to 5001000"]

    async def test_rename_leaves_type_sequence_alone(self, conflicting_repository):
        result = await MigrationService(conflicting_repository).preview(migration_request(
            [legacy("1010", "Food Purchases", "Expense"), legacy("1020", "Materials Used")],
            conflict_resolution=ConflictResolution.RENAME,
        ))
        mapped = by_code(result)

        assert mapped["1010"].suggested_mapping.account_code == "5001000"
        # First cost-of-sales fallback still probes from position 1
        assert mapped["1020"].resolution_source == ResolutionSource.CLASSIFIER
        assert mapped["1020"].suggested_mapping.account_code == "5001001"

    async def test_merge(self, conflicting_repository):
        result = await MigrationService(conflicting_repository).execute(migration_request(
            [legacy("1010", "Food Purchases", "Expense")],
            conflict_resolution=ConflictResolution.MERGE,
            migration_mode=MigrationMode.EXECUTE,
        ))

        mapped = result.migration_result.mapped_accounts[0]
        assert mapped.status == MappingStatus.READY
        assert mapped.merged is True
        assert mapped.conflicts == ["Merged into existing account 5100000"]
        assert conflicting_repository.created == []
        assert result.migration_result.mapped == 1
        assert result.migration_result.merged == 1
        assert result.conflicts_requiring_attention == []

    async def test_fail_aborts_execute(self, conflicting_repository):
        request = migration_request(
            [legacy("1010", "Food Purchases", "Expense"), legacy("1500", "Delivery Van", "Asset")],
            conflict_resolution=ConflictResolution.FAIL,
            migration_mode=MigrationMode.EXECUTE,
        )

        with pytest.raises(MigrationConflictError) as exc_info:
            await MigrationService(conflicting_repository).execute(request)

        assert exc_info.value.conflicting_codes == ["1010"]
        assert "bulk_create" not in conflicting_repository.calls

    async def test_fail_reports_conflicts_in_preview(self, conflicting_repository):
        result = await MigrationService(conflicting_repository).preview(migration_request(
            [legacy("1010", "Food Purchases", "Expense")],
            conflict_resolution=ConflictResolution.FAIL,
        ))

        assert result.conflicts == 1


class TestDegradedPaths:

    async def test_template_load_failure_uses_classifier(self, template_accounts):
        repository = FakeRepository(template=template_accounts, fail_template=True)

        result = await MigrationService(repository).preview(
            migration_request([legacy("1010", "Food Purchases", "Expense")]))

        mapped = result.mapped_accounts[0]
        assert mapped.resolution_source == ResolutionSource.CLASSIFIER
        assert mapped.suggested_mapping.account_type == CanonicalAccountType.DIRECT_EXPENSE
        assert mapped.suggested_mapping.account_code == "6001000"
        assert mapped.status == MappingStatus.READY

    async def test_empty_template_uses_classifier(self):
        result = await MigrationService(FakeRepository()).preview(
            migration_request([legacy("1010", "Food Purchases", "Expense")]))

        assert result.mapped_accounts[0].resolution_source == ResolutionSource.CLASSIFIER

    async def test_matching_error_falls_back(self, fake_repository, monkeypatch):
        async def broken_match(self, request):
            raise ValueError("index corrupted")

        monkeypatch.setattr(TemplateMatcher, "match", broken_match)

        result = await MigrationService(fake_repository).preview(
            migration_request([legacy("1500", "Delivery Van", "Asset")]))

        mapped = result.mapped_accounts[0]
        assert mapped.resolution_source == ResolutionSource.CLASSIFIER
        assert mapped.suggested_mapping.rationale.endswith(" (fallback after matching error)")


class TestStrategies:

    async def test_oracle_verdict_adopted_over_weak_classifier(self, fake_repository):
        oracle = FakeOracle(verdict=OracleVerdict(selected_index=0, confidence=0.97, rationale="Float is cash"))
        service = MigrationService(fake_repository, oracle=oracle)

        result = await service.preview(migration_request(
            [legacy("1090", "Strongbox Float")], mapping_strategy=MappingStrategy.AI_SMART))

        mapped = result.mapped_accounts[0]
        assert mapped.resolution_source == ResolutionSource.ORACLE
        assert mapped.status == MappingStatus.READY
        assert mapped.suggested_mapping.account_code == "1100000"
        assert mapped.suggested_mapping.rationale == "AI semantic match: Float is cash"

    async def test_oracle_verdict_must_beat_classifier(self, fake_repository):
        oracle = FakeOracle(verdict=OracleVerdict(selected_index=0, confidence=0.9))
        service = MigrationService(fake_repository, oracle=oracle)

        result = await service.preview(migration_request(
            [legacy("1500", "Delivery Van", "Asset")], mapping_strategy=MappingStrategy.AI_SMART))

        mapped = result.mapped_accounts[0]
        assert len(oracle.requests) == 1
        assert mapped.resolution_source == ResolutionSource.CLASSIFIER
        assert mapped.suggested_mapping.confidence == 0.95

    async def test_rejected_oracle_pick_yields_to_rule_candidate(
            self, fake_repository, template_accounts, monkeypatch):
        cash, payable = template_accounts[0], template_accounts[1]

        async def ranked_match(self, request):
            return [
                MatchCandidate(account=payable, confidence=0.9, strategy=MatchStrategy.SEMANTIC_ORACLE,
                               rationale="AI semantic match: owed", score=90.0),
                MatchCandidate(account=cash, confidence=0.72, strategy=MatchStrategy.FUZZY,
                               rationale="Similar name", score=57.6),
            ]

        monkeypatch.setattr(TemplateMatcher, "match", ranked_match)

        result = await MigrationService(fake_repository).preview(
            migration_request([legacy("1090", "Cash Drawer", "Asset")]))

        mapped = result.mapped_accounts[0]
        assert mapped.resolution_source == ResolutionSource.TEMPLATE
        assert mapped.suggested_mapping.account_code == "1100000"
        assert mapped.status == MappingStatus.MANUAL_REVIEW

    @pytest.mark.parametrize("strategy", [MappingStrategy.NAME_BASED, MappingStrategy.CUSTOM])
    async def test_oracle_only_for_ai_smart(self, fake_repository, strategy):
        oracle = FakeOracle(verdict=OracleVerdict(selected_index=0, confidence=0.97))
        service = MigrationService(fake_repository, oracle=oracle)

        await service.preview(migration_request([legacy("1090", "Strongbox Float")], mapping_strategy=strategy))

        assert oracle.requests == []

    async def test_code_based_skips_template(self, fake_repository):
        result = await MigrationService(fake_repository).preview(migration_request(
            [legacy("4050", "Misc Item"), legacy("5010", "Food Purchases")],
            mapping_strategy=MappingStrategy.CODE_BASED,
        ))
        mapped = by_code(result)

        assert fake_repository.template_requests == []
        assert mapped["4050"].suggested_mapping.account_type == CanonicalAccountType.REVENUE
        assert mapped["4050"].suggested_mapping.account_code == "4001000"
        assert mapped["4050"].suggested_mapping.rationale == "Account type inferred from legacy code prefix"
        assert mapped["4050"].status == MappingStatus.READY
        assert mapped["5010"].suggested_mapping.account_type == CanonicalAccountType.COST_OF_SALES


class TestPreserveStructure:

    ACCOUNTS = [
        legacy("1010", "Delivery Van", "Asset", parent_code="1000"),
        legacy("1000", "Current Assets", "Asset"),
    ]

    async def test_parent_resolved_regardless_of_order(self, fake_repository):
        result = await MigrationService(fake_repository).preview(
            migration_request(self.ACCOUNTS, preserve_structure=True))
        mapped = by_code(result)

        assert mapped["1000"].suggested_mapping.account_code == "1002000"
        assert mapped["1010"].parent_account_code == "1002000"
        assert mapped["1000"].parent_account_code is None

    async def test_disabled_by_default(self, fake_repository):
        result = await MigrationService(fake_repository).preview(migration_request(self.ACCOUNTS))

        assert all(m.parent_account_code is None for m in result.mapped_accounts)


class TestExecute:

    async def test_creates_ready_accounts(self, fake_repository):
        execution = await MigrationService(fake_repository).execute(
            migration_request(MIXED_BATCH, migration_mode=MigrationMode.EXECUTE))

        assert execution.bulk_creation_result.created == 2
        assert [a.account_code for a in fake_repository.created] == ["5100000", "1001000"]
        assert [m.original_account.original_code for m in execution.conflicts_requiring_attention] == ["3000"]

        van = fake_repository.created[1]
        assert van.opening_balance == Decimal("1500.00")
        assert van.notes == "Migrated from legacy system. Original code: 1500"
        assert van.allow_posting is True
        assert van.currency == "USD"
        assert van.is_active is True

    async def test_inactive_legacy_account_stays_inactive(self, fake_repository):
        await MigrationService(fake_repository).execute(migration_request(
            [legacy("1500", "Delivery Van", "Asset", is_active=False)],
            migration_mode=MigrationMode.EXECUTE,
        ))

        assert fake_repository.created[0].is_active is False
        assert fake_repository.created[0].opening_balance == Decimal("0")

    async def test_nothing_ready_skips_bulk_create(self, fake_repository):
        execution = await MigrationService(fake_repository).execute(
            migration_request([legacy("3000", "Misc Item")], migration_mode=MigrationMode.EXECUTE))

        assert execution.bulk_creation_result.created == 0
        assert "bulk_create" not in fake_repository.calls

    async def test_bulk_failure_surfaces(self, template_accounts):
        repository = FakeRepository(template=template_accounts, fail_bulk=True)

        with pytest.raises(BulkCreationError):
            await MigrationService(repository).execute(
                migration_request(MIXED_BATCH, migration_mode=MigrationMode.EXECUTE))


@pytest.mark.parametrize("confidence,bucket", [
    (1.0, "High (90%+)"),
    (0.9, "High (90%+)"),
    (0.89, "Medium (70-89%)"),
    (0.7, "Medium (70-89%)"),
    (0.69, "Low (<70%)"),
    (0.0, "Low (<70%)"),
])
def test_confidence_bucket(confidence, bucket):
    assert confidence_bucket(confidence) == bucket
