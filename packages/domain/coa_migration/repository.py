"""
Persistence collaborator used by the migration service

The Postgres implementation lives in packages.common.coa_repository;
tests supply an in-memory fake.
"""
from typing import List, Protocol, Set

from packages.domain.coa_migration.schemas import AccountCreate, BulkCreationResult, TemplateAccount


class ChartOfAccountsRepository(Protocol):

    async def organization_exists(self, organization_id: str) -> bool:
        ...

    async def get_existing_codes(self, organization_id: str) -> Set[str]:
        """Canonical codes currently assigned in the organization"""
        ...

    async def bulk_create(self, organization_id: str, accounts: List[AccountCreate]) -> BulkCreationResult:
        """
        Create canonical accounts.

        Accounts whose code already exists are skipped; row-level
        database errors are counted as failed.
        """
        ...

    async def load_template(self, business_type: str) -> List[TemplateAccount]:
        """Template accounts for a business type, in template order"""
        ...
