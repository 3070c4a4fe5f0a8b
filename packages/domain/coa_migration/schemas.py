"""
Data schemas for legacy chart-of-accounts migration

Wire format is camelCase (the migration API and template store speak camelCase),
Python attributes are snake_case. Legacy and template records are frozen:
they are read many times during a batch and never mutated.
"""
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class MigrationModel(BaseModel):
    """Base model: camelCase aliases, populate by either name"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CanonicalAccountType(str, Enum):
    """Canonical account types. Each owns a disjoint 7-digit code range."""
    ASSET = "ASSET"                                   # 1000000-1999999
    LIABILITY = "LIABILITY"                           # 2000000-2999999
    EQUITY = "EQUITY"                                 # 3000000-3999999
    REVENUE = "REVENUE"                               # 4000000-4999999
    COST_OF_SALES = "COST_OF_SALES"                   # 5000000-5999999
    DIRECT_EXPENSE = "DIRECT_EXPENSE"                 # 6000000-6999999
    INDIRECT_EXPENSE = "INDIRECT_EXPENSE"             # 7000000-7999999
    TAX_EXPENSE = "TAX_EXPENSE"                       # 8000000-8999999
    EXTRAORDINARY_EXPENSE = "EXTRAORDINARY_EXPENSE"   # 9000000-9999999


class MigrationMode(str, Enum):
    PREVIEW = "preview"
    EXECUTE = "execute"


class MappingStrategy(str, Enum):
    """How non-overridden accounts are resolved"""
    AI_SMART = "ai_smart"       # Template cascade + semantic oracle
    CODE_BASED = "code_based"   # Classifier, legacy code prefix as tie-breaker
    NAME_BASED = "name_based"   # Template cascade, no oracle
    CUSTOM = "custom"           # User overrides, name_based for the rest


class ConflictResolution(str, Enum):
    SKIP = "skip"
    MERGE = "merge"
    RENAME = "rename"
    FAIL = "fail"


class MappingStatus(str, Enum):
    READY = "ready"
    CONFLICT = "conflict"
    MANUAL_REVIEW = "manual_review"


class MatchStrategy(str, Enum):
    """Template matching strategy that produced a candidate"""
    EXACT = "exact"
    ALIAS = "alias"
    FUZZY = "fuzzy"
    KEYWORD = "keyword"
    SEMANTIC_ORACLE = "semantic_oracle"


class ResolutionSource(str, Enum):
    """Which stage decided the final mapping"""
    OVERRIDE = "override"
    TEMPLATE = "template"
    ORACLE = "oracle"
    CLASSIFIER = "classifier"


class LegacyAccount(MigrationModel):
    """
    One account exported from the legacy bookkeeping system.

    Fields are free text and unvalidated beyond presence of code and name.
    Balance sign hints at debit (positive) or credit (negative) nature.
    """
    model_config = ConfigDict(frozen=True)

    original_code: str = Field(..., description="Legacy account code (not guaranteed unique)")
    original_name: str = Field(..., description="Legacy account name")
    original_type: Optional[str] = Field(None, description="Legacy account type, free text")
    original_category: Optional[str] = Field(None, description="Legacy category/group")
    description: Optional[str] = None
    balance: Optional[Decimal] = Field(None, description="Signed balance")
    is_active: Optional[bool] = None
    parent_code: Optional[str] = Field(None, description="Legacy code of the parent account")
    level: Optional[int] = None

    @field_validator("original_code", "parent_code", mode="before")
    @classmethod
    def coerce_code(cls, v):
        """Legacy exports frequently carry numeric codes"""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("original_code", "original_name")
    @classmethod
    def require_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class TemplateAccountMetadata(MigrationModel):
    model_config = ConfigDict(frozen=True)

    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    usage_frequency: str = Field(default="medium", description="very_high, high, medium, low")
    is_critical: bool = False
    priority: str = Field(default="optional", description="essential, recommended, optional")


class TemplateAccount(MigrationModel):
    """Canonical account from a business-type template"""
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "accountCode": "5100000",
                "accountName": "Food Cost",
                "accountType": "COST_OF_SALES",
                "description": "Cost of food ingredients sold",
                "keywords": ["food", "ingredients", "cost"],
                "aliases": ["COGS - Food", "Food Purchases"],
                "metadata": {
                    "confidence": 0.95,
                    "usageFrequency": "very_high",
                    "isCritical": True,
                    "priority": "essential"
                }
            }
        },
    )

    account_code: str
    account_name: str
    account_type: CanonicalAccountType
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    metadata: TemplateAccountMetadata = Field(default_factory=TemplateAccountMetadata)


class TemplateStats(MigrationModel):
    total_accounts: int
    categories: Dict[str, int]
    priorities: Dict[str, int]
    average_confidence: float


class TypeClassification(BaseModel):
    """Result of the rule-based account type classifier"""
    account_type: CanonicalAccountType
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str
    mapping_rule: str = Field(..., description="Name of the rule that fired")


class MatchRequest(BaseModel):
    name: str
    type: Optional[str] = None
    description: Optional[str] = None


class MatchCandidate(BaseModel):
    """One ranked template match for a legacy account"""
    account: TemplateAccount
    confidence: float = Field(..., ge=0.0, le=1.0)
    strategy: MatchStrategy
    rationale: str
    score: float


class OracleCandidate(MigrationModel):
    index: int
    name: str
    type: str
    description: str = ""
    keywords: List[str] = Field(default_factory=list)


class OracleRequest(MigrationModel):
    legacy_name: str
    legacy_type: Optional[str] = None
    legacy_description: Optional[str] = None
    candidates: List[OracleCandidate] = Field(..., max_length=10)


class OracleVerdict(MigrationModel):
    selected_index: Optional[int] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str = ""


class SuggestedMapping(MigrationModel):
    account_code: str
    account_name: str
    account_type: CanonicalAccountType
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str


class MappedAccount(MigrationModel):
    """Migration outcome for a single legacy account"""
    original_account: LegacyAccount
    suggested_mapping: SuggestedMapping
    status: MappingStatus
    conflicts: Optional[List[str]] = None
    resolution_source: ResolutionSource
    parent_account_code: Optional[str] = None
    merged: bool = False


class MigrationSummary(MigrationModel):
    by_original_type: Dict[str, int] = Field(default_factory=dict)
    by_new_type: Dict[str, int] = Field(default_factory=dict)
    confidence_distribution: Dict[str, int] = Field(default_factory=dict)


class MigrationResult(MigrationModel):
    total_accounts: int
    mapped: int
    conflicts: int
    manual_review: int
    # Ready accounts that resolve to an existing account; never created
    merged: int = 0
    mapped_accounts: List[MappedAccount]
    summary: MigrationSummary


class MigrationRequest(MigrationModel):
    """
    Body of POST /chart-of-accounts/migrate-legacy.

    Batch size is checked by the migration service, not here, so that
    oversized batches are rejected with a domain error before any work.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "organizationId": "org_123",
                "accounts": [
                    {"originalCode": "1010", "originalName": "Cash in Bank", "originalType": "Asset"},
                    {"originalCode": "2100", "originalName": "Sundry Creditors"}
                ],
                "migrationMode": "preview",
                "mappingStrategy": "ai_smart",
                "customMappings": {"1010": "1100000"},
                "conflictResolution": "skip",
                "preserveStructure": False
            }
        }
    )

    organization_id: str
    accounts: List[LegacyAccount]
    migration_mode: MigrationMode = MigrationMode.PREVIEW
    mapping_strategy: MappingStrategy = MappingStrategy.AI_SMART
    custom_mappings: Dict[str, str] = Field(default_factory=dict)
    conflict_resolution: ConflictResolution = ConflictResolution.SKIP
    preserve_structure: bool = False
    business_type: Optional[str] = None


class AccountCreate(MigrationModel):
    """Payload handed to the persistence layer in execute mode"""
    account_code: str
    account_name: str
    account_type: CanonicalAccountType
    description: str
    is_active: bool = True
    allow_posting: bool = True
    currency: str = "USD"
    opening_balance: Decimal = Decimal("0")
    tax_deductible: bool = False
    notes: Optional[str] = None


class BulkCreationResult(MigrationModel):
    created: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class MigrationExecution(MigrationModel):
    migration_result: MigrationResult
    bulk_creation_result: BulkCreationResult
    conflicts_requiring_attention: List[MappedAccount]
