"""
Chart of Accounts Repository - Persistence for canonical accounts and templates

Tables:
- organizations              → existence checks
- chart_of_accounts          → canonical accounts per organization (unique on org + code)
- coa_template_accounts      → curated template accounts per business type

Implements the ChartOfAccountsRepository protocol the migration service
depends on (packages.domain.coa_migration.repository).
"""
from datetime import datetime, timezone
from typing import List, Set
from uuid import uuid4

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from packages.domain.coa_migration.schemas import (
    AccountCreate,
    BulkCreationResult,
    TemplateAccount,
    TemplateAccountMetadata,
)

logger = structlog.get_logger()


class SqlChartOfAccountsRepository:
    """
    Postgres-backed repository.

    One instance wraps one request-scoped session.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def organization_exists(self, organization_id: str) -> bool:
        query = text("""
            SELECT 1
            FROM organizations
            WHERE id = :organization_id
        """)

        result = await self.db.execute(query, {"organization_id": organization_id})
        return result.first() is not None

    async def get_existing_codes(self, organization_id: str) -> Set[str]:
        query = text("""
            SELECT account_code
            FROM chart_of_accounts
            WHERE organization_id = :organization_id
        """)

        result = await self.db.execute(query, {"organization_id": organization_id})
        codes = {row.account_code for row in result.fetchall()}

        logger.debug("existing_codes_loaded",
                     organization_id=organization_id,
                     count=len(codes))

        return codes

    async def bulk_create(self, organization_id: str, accounts: List[AccountCreate]) -> BulkCreationResult:
        logger.info("bulk_create_started",
                    organization_id=organization_id,
                    account_count=len(accounts))

        existing = await self.get_existing_codes(organization_id)
        result = BulkCreationResult()

        query = text("""
            INSERT INTO chart_of_accounts (
                id,
                organization_id,
                account_code,
                account_name,
                account_type,
                description,
                is_active,
                allow_posting,
                currency,
                opening_balance,
                tax_deductible,
                notes,
                created_at
            ) VALUES (
                :id,
                :organization_id,
                :account_code,
                :account_name,
                :account_type,
                :description,
                :is_active,
                :allow_posting,
                :currency,
                :opening_balance,
                :tax_deductible,
                :notes,
                :created_at
            )
        """)

        for account in accounts:
            if account.account_code in existing:
                result.skipped += 1
                continue

            try:
                # Savepoint per row: a failed insert rolls back only that row
                async with self.db.begin_nested():
                    await self.db.execute(query, {
                        "id": uuid4(),
                        "organization_id": organization_id,
                        "account_code": account.account_code,
                        "account_name": account.account_name,
                        "account_type": account.account_type.value,
                        "description": account.description,
                        "is_active": account.is_active,
                        "allow_posting": account.allow_posting,
                        "currency": account.currency,
                        "opening_balance": account.opening_balance,
                        "tax_deductible": account.tax_deductible,
                        "notes": account.notes,
                        "created_at": datetime.now(timezone.utc),
                    })
                existing.add(account.account_code)
                result.created += 1
            except SQLAlchemyError as e:
                logger.error("account_insert_failed",
                             organization_id=organization_id,
                             account_code=account.account_code,
                             error=str(e),
                             exc_info=True)
                result.failed += 1
                result.errors.append(f"{account.account_code}: {e.__class__.__name__}")

        await self.db.commit()

        logger.info("bulk_create_complete",
                    organization_id=organization_id,
                    created=result.created,
                    skipped=result.skipped,
                    failed=result.failed)

        return result

    async def load_template(self, business_type: str) -> List[TemplateAccount]:
        query = text("""
            SELECT
                account_code,
                account_name,
                account_type,
                description,
                keywords,
                aliases,
                confidence,
                usage_frequency,
                is_critical,
                priority
            FROM coa_template_accounts
            WHERE business_type = :business_type
            ORDER BY sort_order, account_code
        """)

        # A failed template read must not poison the session used for bulk_create
        async with self.db.begin_nested():
            result = await self.db.execute(query, {"business_type": business_type})
            rows = result.fetchall()

        accounts = [
            TemplateAccount(
                account_code=row.account_code,
                account_name=row.account_name,
                account_type=row.account_type,
                description=row.description or "",
                keywords=list(row.keywords or []),
                aliases=list(row.aliases or []),
                metadata=TemplateAccountMetadata(
                    confidence=float(row.confidence or 0),
                    usage_frequency=row.usage_frequency or "medium",
                    is_critical=bool(row.is_critical),
                    priority=row.priority or "optional",
                ),
            )
            for row in rows
        ]

        logger.info("template_loaded",
                    business_type=business_type,
                    account_count=len(accounts))

        return accounts
