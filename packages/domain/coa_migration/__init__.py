"""
Chart of Accounts Migration - Legacy account mapping onto the canonical chart

Per-account cascade:
1. User override (customMappings) → confidence 1.0
2. Template matching (exact, alias, fuzzy, keyword, semantic oracle)
3. Rule-based type classification + typed code allocation

Canonical codes are 7 digits, one million per account type:
- "Cash in Bank" (Asset) → ASSET → 1001000
- "Food Purchases" (Cost of Sales) → template "Food Cost" → 5010000
- "Misc Item" (no type) → DIRECT_EXPENSE 0.50 → manual review

Preview mode only reads; execute mode creates the ready accounts.
"""

from packages.domain.coa_migration.code_allocator import CodeAllocator, code_allocator
from packages.domain.coa_migration.errors import (
    BulkCreationError,
    CodeRangeExhaustedError,
    MigrationConflictError,
    MigrationError,
    MigrationValidationError,
    OrganizationNotFoundError,
)
from packages.domain.coa_migration.migration_service import MigrationService
from packages.domain.coa_migration.schemas import (
    CanonicalAccountType,
    LegacyAccount,
    MappedAccount,
    MigrationExecution,
    MigrationRequest,
    MigrationResult,
    TemplateAccount,
)
from packages.domain.coa_migration.template_index import TemplateIndex
from packages.domain.coa_migration.template_matcher import TemplateMatcher
from packages.domain.coa_migration.type_classifier import AccountTypeClassifier, account_type_classifier

__all__ = [
    'AccountTypeClassifier',
    'account_type_classifier',
    'CodeAllocator',
    'code_allocator',
    'TemplateIndex',
    'TemplateMatcher',
    'MigrationService',
    'CanonicalAccountType',
    'LegacyAccount',
    'MappedAccount',
    'MigrationExecution',
    'MigrationRequest',
    'MigrationResult',
    'TemplateAccount',
    'MigrationError',
    'MigrationValidationError',
    'OrganizationNotFoundError',
    'MigrationConflictError',
    'BulkCreationError',
    'CodeRangeExhaustedError',
]
