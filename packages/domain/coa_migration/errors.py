"""
Migration error taxonomy

Only structurally invalid requests and unrecoverable downstream failures
surface as errors. Oracle and template-load problems are absorbed where
they happen and degrade confidence instead.
"""
from typing import List


class MigrationError(Exception):
    """Base exception for chart-of-accounts migration"""
    pass


class MigrationValidationError(MigrationError):
    """Request is structurally invalid (missing fields, batch size)"""
    pass


class OrganizationNotFoundError(MigrationError):
    """Target organization does not exist"""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization not found: {organization_id}")


class MigrationConflictError(MigrationError):
    """Conflicts found and the request asked to fail on conflict"""

    def __init__(self, conflicting_codes: List[str]):
        self.conflicting_codes = conflicting_codes
        super().__init__(
            f"{len(conflicting_codes)} account(s) conflict with existing codes: "
            f"{', '.join(conflicting_codes)}"
        )


class BulkCreationError(MigrationError):
    """Persistence layer failed while creating migrated accounts"""
    pass


class CodeRangeExhaustedError(MigrationError):
    """Every code in an account type's range is already in use"""
    pass
