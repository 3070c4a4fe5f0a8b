"""Test fixtures and configuration."""

import asyncio
import os
from typing import List, Optional

# Settings are read on first import; no database or API key in tests
os.environ.setdefault("DB_PASSWORD", "test-password")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["ORACLE_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from packages.domain.coa_migration.schemas import (
    AccountCreate,
    BulkCreationResult,
    CanonicalAccountType,
    OracleRequest,
    OracleVerdict,
    TemplateAccount,
    TemplateAccountMetadata,
)


class FakeRepository:
    """In-memory ChartOfAccountsRepository that records every call."""

    def __init__(
        self,
        template: Optional[List[TemplateAccount]] = None,
        existing_codes=(),
        organizations=("org_123",),
        fail_template: bool = False,
        fail_bulk: bool = False,
    ):
        self.template = list(template or [])
        self.existing_codes = set(existing_codes)
        self.organizations = set(organizations)
        self.fail_template = fail_template
        self.fail_bulk = fail_bulk
        self.calls: List[str] = []
        self.template_requests: List[str] = []
        self.created: List[AccountCreate] = []

    async def organization_exists(self, organization_id: str) -> bool:
        self.calls.append("organization_exists")
        return organization_id in self.organizations

    async def get_existing_codes(self, organization_id: str):
        self.calls.append("get_existing_codes")
        return set(self.existing_codes)

    async def bulk_create(self, organization_id: str, accounts: List[AccountCreate]) -> BulkCreationResult:
        self.calls.append("bulk_create")
        if self.fail_bulk:
            raise RuntimeError("database unavailable")

        result = BulkCreationResult()
        for account in accounts:
            if account.account_code in self.existing_codes:
                result.skipped += 1
                continue
            self.existing_codes.add(account.account_code)
            self.created.append(account)
            result.created += 1
        return result

    async def load_template(self, business_type: str) -> List[TemplateAccount]:
        self.calls.append("load_template")
        self.template_requests.append(business_type)
        if self.fail_template:
            raise RuntimeError("template store unavailable")
        return list(self.template)


class FakeOracle:
    """Semantic oracle returning a canned verdict, optionally slow or failing."""

    def __init__(
        self,
        verdict: Optional[OracleVerdict] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.verdict = verdict
        self.delay = delay
        self.error = error
        self.requests: List[OracleRequest] = []

    async def select(self, request: OracleRequest) -> Optional[OracleVerdict]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.verdict


def template_account(
    code: str,
    name: str,
    account_type: CanonicalAccountType,
    keywords=(),
    aliases=(),
    description: str = "",
    priority: str = "optional",
    usage_frequency: str = "medium",
    confidence: float = 0.9,
) -> TemplateAccount:
    return TemplateAccount(
        account_code=code,
        account_name=name,
        account_type=account_type,
        description=description,
        keywords=list(keywords),
        aliases=list(aliases),
        metadata=TemplateAccountMetadata(
            confidence=confidence,
            usage_frequency=usage_frequency,
            priority=priority,
        ),
    )


@pytest.fixture
def template_accounts() -> List[TemplateAccount]:
    """Small restaurant template; codes stay clear of the allocator's first probes."""
    return [
        template_account(
            "1100000", "Cash on Hand", CanonicalAccountType.ASSET,
            keywords=["cash", "till"], aliases=["Petty Cash"],
            description="Till and safe cash",
            priority="essential", usage_frequency="very_high", confidence=0.98,
        ),
        template_account(
            "2100000", "Accounts Payable", CanonicalAccountType.LIABILITY,
            keywords=["payable", "suppliers"], aliases=["AP", "Trade Payables"],
            description="Amounts owed to suppliers",
            priority="essential", usage_frequency="very_high", confidence=0.97,
        ),
        template_account(
            "4100000", "Food Sales", CanonicalAccountType.REVENUE,
            keywords=["food", "sales"], aliases=["Food Revenue"],
            description="Food revenue",
            priority="essential", usage_frequency="high", confidence=0.96,
        ),
        template_account(
            "5100000", "Food Cost", CanonicalAccountType.COST_OF_SALES,
            keywords=["food", "cost", "ingredients"], aliases=["COGS - Food", "Food Purchases"],
            description="Cost of food ingredients sold",
            priority="essential", usage_frequency="very_high", confidence=0.95,
        ),
        template_account(
            "6100000", "Kitchen Wages", CanonicalAccountType.DIRECT_EXPENSE,
            keywords=["wages", "kitchen", "payroll"], aliases=["BOH Wages"],
            description="Back-of-house payroll",
            priority="recommended", usage_frequency="high", confidence=0.92,
        ),
        template_account(
            "7100000", "Rent Expense", CanonicalAccountType.INDIRECT_EXPENSE,
            keywords=["rent", "lease"], aliases=["Occupancy Cost"],
            description="Premises rent",
            priority="recommended", usage_frequency="medium", confidence=0.93,
        ),
    ]


@pytest.fixture
def fake_repository(template_accounts) -> FakeRepository:
    return FakeRepository(template=template_accounts)


@pytest_asyncio.fixture
async def client(fake_repository):
    """API client with the repository and oracle replaced by fakes."""
    from apps.api.main import app
    from apps.api.routers.chart_of_accounts import get_coa_repository, get_migration_oracle

    app.dependency_overrides[get_coa_repository] = lambda: fake_repository
    app.dependency_overrides[get_migration_oracle] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
