"""
Migration Service - Orchestrates legacy chart-of-accounts migration

Per legacy account:
1. User override (customMappings)        → confidence 1.0
2. Template cascade (exact/alias/fuzzy/keyword, oracle as last resort)
   - confidence > 0.8 → ready, otherwise manual_review
   - oracle verdicts only win if they beat the rule-based classifier
3. Fallback: rule classifier + code allocator
   - confidence < 0.75 → manual_review
4. Matching error → step 3, rationale notes the fallback
5. Conflict check against used codes, then conflictResolution policy

Example:
- "Cash in Bank" (Asset), no template → classifier: ASSET 0.95
  → allocator: 1001000 → ready
- Override "1010" → "1100000" where 1100000 already exists → conflict

The batch loop is sequential: every allocation must see all previous
allocations of the same batch. Each request gets its own MigrationBatch.
"""
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import structlog

from packages.common.metrics import migration_accounts_total, template_load_failures_total
from packages.domain.coa_migration.code_allocator import CodeAllocator, code_allocator
from packages.domain.coa_migration.errors import (
    BulkCreationError,
    MigrationConflictError,
    MigrationValidationError,
    OrganizationNotFoundError,
)
from packages.domain.coa_migration.schemas import (
    AccountCreate,
    BulkCreationResult,
    CanonicalAccountType,
    ConflictResolution,
    LegacyAccount,
    MappedAccount,
    MappingStatus,
    MappingStrategy,
    MatchCandidate,
    MatchRequest,
    MatchStrategy,
    MigrationExecution,
    MigrationMode,
    MigrationRequest,
    MigrationResult,
    MigrationSummary,
    ResolutionSource,
    SuggestedMapping,
    TypeClassification,
)
from packages.domain.coa_migration.repository import ChartOfAccountsRepository
from packages.domain.coa_migration.semantic_oracle import SemanticOracle
from packages.domain.coa_migration.template_index import TemplateIndex
from packages.domain.coa_migration.template_matcher import TemplateMatcher
from packages.domain.coa_migration.type_classifier import AccountTypeClassifier, account_type_classifier

logger = structlog.get_logger()

CONFLICT_MESSAGE = "Account code already exists"


class MigrationBatch:
    """
    Accumulator for one migration request.

    Owns the used-code set, per-type sequence counters and results.
    Never shared between requests.
    """

    def __init__(self, used_codes: Set[str]):
        self.used_codes = used_codes
        self.type_counters: Dict[CanonicalAccountType, int] = {}
        self.mapped_accounts: List[MappedAccount] = []
        self.conflicting_codes: List[str] = []

    def next_sequence(self, account_type: CanonicalAccountType) -> int:
        """1-based position of the next account of this type"""
        self.type_counters[account_type] = self.type_counters.get(account_type, 0) + 1
        return self.type_counters[account_type]

    def current_sequence(self, account_type: CanonicalAccountType) -> int:
        """Position of the latest account of this type, without advancing"""
        return max(self.type_counters.get(account_type, 0), 1)

    def reserve(self, code: str) -> bool:
        """Claim a code; False (and no change) if it is already taken."""
        if code in self.used_codes:
            return False
        self.used_codes.add(code)
        return True


class MigrationService:
    """
    Maps legacy accounts onto the canonical chart of accounts.

    Usage:
        service = MigrationService(repository, oracle=get_semantic_oracle())
        result = await service.run(request)
    """

    MAX_ACCOUNTS = 500

    # Template matches above this confidence apply without review
    TEMPLATE_READY_THRESHOLD = 0.8

    def __init__(
        self,
        repository: ChartOfAccountsRepository,
        oracle: Optional[SemanticOracle] = None,
        classifier: Optional[AccountTypeClassifier] = None,
        allocator: Optional[CodeAllocator] = None,
        max_accounts: int = MAX_ACCOUNTS,
        oracle_timeout: float = 10.0,
        default_business_type: str = "restaurant",
    ):
        self.repository = repository
        self.oracle = oracle
        self.classifier = classifier or account_type_classifier
        self.allocator = allocator or code_allocator
        self.max_accounts = max_accounts
        self.oracle_timeout = oracle_timeout
        self.default_business_type = default_business_type

    def validate_request(self, request: MigrationRequest) -> None:
        """
        Reject structurally invalid requests before any work.

        Raises:
            MigrationValidationError: Missing organization, empty or oversized batch
        """
        if not request.organization_id or not request.organization_id.strip():
            raise MigrationValidationError("Missing required fields: organizationId, accounts (array)")

        if not request.accounts:
            raise MigrationValidationError("No accounts provided for migration")

        if len(request.accounts) > self.max_accounts:
            raise MigrationValidationError(
                f"Maximum {self.max_accounts} accounts can be migrated at once"
            )

    async def run(self, request: MigrationRequest) -> Union[MigrationResult, MigrationExecution]:
        """Preview or execute, depending on the request's migration mode."""
        if request.migration_mode == MigrationMode.EXECUTE:
            return await self.execute(request)
        return await self.preview(request)

    async def preview(self, request: MigrationRequest) -> MigrationResult:
        """
        Map every account without writing anything.

        Existing codes are read once to seed conflict detection.
        """
        result, _ = await self._map_batch(request)

        logger.info("migration_preview_generated",
                    organization_id=request.organization_id,
                    total=result.total_accounts,
                    ready=result.mapped,
                    merged=result.merged,
                    conflicts=result.conflicts,
                    review=result.manual_review)

        return result

    async def execute(self, request: MigrationRequest) -> MigrationExecution:
        """
        Map every account and create the ready ones.

        Conflicts and manual-review accounts are returned untouched.

        Raises:
            MigrationConflictError: conflictResolution=fail and conflicts were found
            BulkCreationError: The persistence layer failed
        """
        result, conflicting_codes = await self._map_batch(request)

        if request.conflict_resolution == ConflictResolution.FAIL and conflicting_codes:
            logger.warning("migration_aborted_on_conflict",
                           organization_id=request.organization_id,
                           conflicting_codes=conflicting_codes)
            raise MigrationConflictError(conflicting_codes)

        to_create = [
            self._to_account_create(mapped)
            for mapped in result.mapped_accounts
            if mapped.status == MappingStatus.READY and not mapped.merged
        ]

        if to_create:
            try:
                bulk_result = await self.repository.bulk_create(request.organization_id, to_create)
            except Exception as e:
                logger.error("bulk_create_failed",
                             organization_id=request.organization_id,
                             requested=len(to_create),
                             error=str(e),
                             exc_info=True)
                raise BulkCreationError("Failed to execute bulk account creation") from e
        else:
            bulk_result = BulkCreationResult()

        attention = [
            mapped for mapped in result.mapped_accounts
            if mapped.status in (MappingStatus.CONFLICT, MappingStatus.MANUAL_REVIEW)
        ]

        logger.info("migration_executed",
                    organization_id=request.organization_id,
                    requested=len(to_create),
                    created=bulk_result.created,
                    skipped=bulk_result.skipped,
                    failed=bulk_result.failed,
                    requiring_attention=len(attention))

        return MigrationExecution(
            migration_result=result,
            bulk_creation_result=bulk_result,
            conflicts_requiring_attention=attention,
        )

    async def _map_batch(self, request: MigrationRequest) -> Tuple[MigrationResult, List[str]]:
        self.validate_request(request)

        logger.info("migration_started",
                    organization_id=request.organization_id,
                    account_count=len(request.accounts),
                    migration_mode=request.migration_mode.value,
                    mapping_strategy=request.mapping_strategy.value,
                    conflict_resolution=request.conflict_resolution.value)

        if not await self.repository.organization_exists(request.organization_id):
            raise OrganizationNotFoundError(request.organization_id)

        existing_codes = await self.repository.get_existing_codes(request.organization_id)
        batch = MigrationBatch(set(existing_codes))
        matcher = await self._build_matcher(request)

        for account in request.accounts:
            mapped = await self._map_account(account, request, matcher, batch)
            batch.mapped_accounts.append(mapped)
            migration_accounts_total.labels(status=mapped.status.value).inc()

        if request.preserve_structure:
            self._link_parents(batch.mapped_accounts)

        return self._build_result(request.accounts, batch.mapped_accounts), batch.conflicting_codes

    async def _build_matcher(self, request: MigrationRequest) -> Optional[TemplateMatcher]:
        """
        Load the business-type template and index it.

        Returns None (no-template mode) for code_based migrations, when the
        template is empty, or when it cannot be loaded.
        """
        if request.mapping_strategy == MappingStrategy.CODE_BASED:
            return None

        business_type = request.business_type or self.default_business_type

        try:
            template_accounts = await self.repository.load_template(business_type)
        except Exception as e:
            logger.error("template_load_failed",
                         business_type=business_type,
                         error=str(e),
                         exc_info=True)
            template_load_failures_total.inc()
            return None

        if not template_accounts:
            logger.info("template_not_found", business_type=business_type)
            return None

        oracle = self.oracle if request.mapping_strategy == MappingStrategy.AI_SMART else None

        return TemplateMatcher(
            TemplateIndex(template_accounts),
            oracle=oracle,
            oracle_timeout=self.oracle_timeout,
        )

    async def _map_account(
        self,
        account: LegacyAccount,
        request: MigrationRequest,
        matcher: Optional[TemplateMatcher],
        batch: MigrationBatch,
    ) -> MappedAccount:
        override_code = request.custom_mappings.get(account.original_code)
        if override_code:
            return self._map_override(account, override_code, request, batch)

        classification = self._classify(account, request.mapping_strategy)

        if matcher is not None:
            try:
                candidates = await matcher.match(MatchRequest(
                    name=account.original_name,
                    type=account.original_type,
                    description=account.description,
                ))
            except Exception as e:
                logger.error("template_matching_failed",
                             original_code=account.original_code,
                             original_name=account.original_name,
                             error=str(e),
                             exc_info=True)
                return self._map_by_classification(
                    account, classification, request, batch,
                    rationale_suffix=" (fallback after matching error)",
                )

            # A rejected oracle pick yields to the best rule-based candidate
            for candidate in candidates:
                if self._should_adopt(candidate, classification, account):
                    return self._map_template_candidate(account, candidate, request, batch)

        return self._map_by_classification(account, classification, request, batch)

    def _classify(self, account: LegacyAccount, strategy: MappingStrategy) -> TypeClassification:
        classification = self.classifier.classify(
            account.original_type,
            account.original_name,
            account.balance,
        )

        if strategy == MappingStrategy.CODE_BASED and classification.mapping_rule == "default":
            by_code = self.classifier.classify_by_code(account.original_code)
            if by_code is not None:
                return by_code

        return classification

    def _should_adopt(
        self,
        candidate: MatchCandidate,
        classification: TypeClassification,
        account: LegacyAccount,
    ) -> bool:
        if candidate.confidence <= 0:
            return False

        if (candidate.strategy == MatchStrategy.SEMANTIC_ORACLE
                and candidate.confidence <= classification.confidence):
            logger.info("oracle_verdict_not_adopted",
                        original_code=account.original_code,
                        oracle_confidence=candidate.confidence,
                        classifier_confidence=classification.confidence)
            return False

        return True

    def _map_override(
        self,
        account: LegacyAccount,
        override_code: str,
        request: MigrationRequest,
        batch: MigrationBatch,
    ) -> MappedAccount:
        # Type is still classified so the summary and payload carry one
        classification = self.classifier.classify(
            account.original_type,
            account.original_name,
            account.balance,
        )

        suggestion = SuggestedMapping(
            account_code=override_code,
            account_name=account.original_name,
            account_type=classification.account_type,
            description=account.description or f"Migrated from {account.original_code}",
            confidence=1.0,
            rationale="Custom mapping provided by user",
        )

        return self._finalize(
            account, suggestion, MappingStatus.READY, ResolutionSource.OVERRIDE, request, batch,
        )

    def _map_template_candidate(
        self,
        account: LegacyAccount,
        candidate: MatchCandidate,
        request: MigrationRequest,
        batch: MigrationBatch,
    ) -> MappedAccount:
        template = candidate.account

        suggestion = SuggestedMapping(
            account_code=template.account_code,
            account_name=template.account_name,
            account_type=template.account_type,
            description=template.description or self._default_description(account, template.account_name),
            confidence=candidate.confidence,
            rationale=candidate.rationale,
        )

        status = (MappingStatus.READY if candidate.confidence > self.TEMPLATE_READY_THRESHOLD
                  else MappingStatus.MANUAL_REVIEW)
        source = (ResolutionSource.ORACLE if candidate.strategy == MatchStrategy.SEMANTIC_ORACLE
                  else ResolutionSource.TEMPLATE)

        return self._finalize(account, suggestion, status, source, request, batch)

    def _map_by_classification(
        self,
        account: LegacyAccount,
        classification: TypeClassification,
        request: MigrationRequest,
        batch: MigrationBatch,
        rationale_suffix: str = "",
    ) -> MappedAccount:
        account_type = classification.account_type
        code = self.allocator.allocate(
            account_type,
            batch.next_sequence(account_type),
            batch.used_codes,
        )

        suggestion = SuggestedMapping(
            account_code=code,
            account_name=account.original_name,
            account_type=account_type,
            description=account.description or self._default_description(account, account.original_name),
            confidence=classification.confidence,
            rationale=classification.rationale + rationale_suffix,
        )

        status = (MappingStatus.MANUAL_REVIEW
                  if classification.confidence < self.classifier.REVIEW_THRESHOLD
                  else MappingStatus.READY)

        # The allocator already reserved the code
        return self._finalize(
            account, suggestion, status, ResolutionSource.CLASSIFIER, request, batch,
            reserved=True,
        )

    def _finalize(
        self,
        account: LegacyAccount,
        suggestion: SuggestedMapping,
        status: MappingStatus,
        source: ResolutionSource,
        request: MigrationRequest,
        batch: MigrationBatch,
        reserved: bool = False,
    ) -> MappedAccount:
        """Reserve the suggested code, or apply the conflict resolution policy."""
        if reserved or batch.reserve(suggestion.account_code):
            return MappedAccount(
                original_account=account,
                suggested_mapping=suggestion,
                status=status,
                resolution_source=source,
            )

        code = suggestion.account_code
        logger.info("account_code_conflict",
                    original_code=account.original_code,
                    account_code=code,
                    resolution=request.conflict_resolution.value)

        if request.conflict_resolution == ConflictResolution.RENAME:
            new_code = self.allocator.allocate(
                suggestion.account_type,
                batch.current_sequence(suggestion.account_type),
                batch.used_codes,
            )
            return MappedAccount(
                original_account=account,
                suggested_mapping=suggestion.model_copy(update={"account_code": new_code}),
                status=status,
                conflicts=[f"Renamed from {code} to {new_code}"],
                resolution_source=source,
            )

        if request.conflict_resolution == ConflictResolution.MERGE:
            return MappedAccount(
                original_account=account,
                suggested_mapping=suggestion,
                status=status,
                conflicts=[f"Merged into existing account {code}"],
                resolution_source=source,
                merged=True,
            )

        batch.conflicting_codes.append(account.original_code)
        return MappedAccount(
            original_account=account,
            suggested_mapping=suggestion,
            status=MappingStatus.CONFLICT,
            conflicts=[CONFLICT_MESSAGE],
            resolution_source=source,
        )

    @staticmethod
    def _default_description(account: LegacyAccount, name: str) -> str:
        return f"Migrated from {account.original_code} - {name}"

    @staticmethod
    def _link_parents(mapped_accounts: List[MappedAccount]) -> None:
        """Translate legacy parent codes into the parents' suggested canonical codes."""
        canonical_by_original: Dict[str, str] = {}
        for mapped in mapped_accounts:
            canonical_by_original.setdefault(
                mapped.original_account.original_code,
                mapped.suggested_mapping.account_code,
            )

        for mapped in mapped_accounts:
            parent_code = mapped.original_account.parent_code
            if (parent_code
                    and parent_code != mapped.original_account.original_code
                    and parent_code in canonical_by_original):
                mapped.parent_account_code = canonical_by_original[parent_code]

    @staticmethod
    def _to_account_create(mapped: MappedAccount) -> AccountCreate:
        original = mapped.original_account
        suggestion = mapped.suggested_mapping

        return AccountCreate(
            account_code=suggestion.account_code,
            account_name=suggestion.account_name,
            account_type=suggestion.account_type,
            description=suggestion.description,
            is_active=original.is_active if original.is_active is not None else True,
            opening_balance=original.balance or 0,
            notes=f"Migrated from legacy system. Original code: {original.original_code}",
        )

    def _build_result(
        self,
        accounts: Sequence[LegacyAccount],
        mapped_accounts: List[MappedAccount],
    ) -> MigrationResult:
        def count(status: MappingStatus) -> int:
            return sum(1 for mapped in mapped_accounts if mapped.status == status)

        return MigrationResult(
            total_accounts=len(accounts),
            mapped=count(MappingStatus.READY),
            conflicts=count(MappingStatus.CONFLICT),
            manual_review=count(MappingStatus.MANUAL_REVIEW),
            merged=sum(1 for mapped in mapped_accounts if mapped.merged),
            mapped_accounts=mapped_accounts,
            summary=summarize(accounts, mapped_accounts),
        )


def confidence_bucket(confidence: float) -> str:
    if confidence >= 0.9:
        return "High (90%+)"
    if confidence >= 0.7:
        return "Medium (70-89%)"
    return "Low (<70%)"


def summarize(accounts: Sequence[LegacyAccount], mapped_accounts: Sequence[MappedAccount]) -> MigrationSummary:
    """Counts by original type, by resolved type, and by confidence bucket."""
    summary = MigrationSummary()

    for account in accounts:
        original_type = account.original_type or "Unknown"
        summary.by_original_type[original_type] = summary.by_original_type.get(original_type, 0) + 1

    for mapped in mapped_accounts:
        new_type = mapped.suggested_mapping.account_type.value
        summary.by_new_type[new_type] = summary.by_new_type.get(new_type, 0) + 1

        bucket = confidence_bucket(mapped.suggested_mapping.confidence)
        summary.confidence_distribution[bucket] = summary.confidence_distribution.get(bucket, 0) + 1

    return summary
