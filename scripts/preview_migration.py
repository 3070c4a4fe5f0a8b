#!/usr/bin/env python3
"""
Preview a legacy chart-of-accounts migration from a CSV export (no database)

CSV columns: code,name,type,description,balance

Without --template, every account goes through the rule classifier and the
code allocator. With --template (JSON list of template accounts), the
template cascade runs first, exactly as in the API (oracle disabled).

Usage:
    python scripts/preview_migration.py legacy_accounts.csv
    python scripts/preview_migration.py legacy_accounts.csv --template restaurant.json
"""
import argparse
import asyncio
import csv
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Set

sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from packages.domain.coa_migration.migration_service import MigrationService
from packages.domain.coa_migration.schemas import (
    AccountCreate,
    BulkCreationResult,
    LegacyAccount,
    MappingStrategy,
    MigrationRequest,
    TemplateAccount,
)

logger = structlog.get_logger()

PREVIEW_ORGANIZATION = "preview"


class InMemoryRepository:
    """Repository for offline previews: one empty organization, optional template"""

    def __init__(self, template: List[TemplateAccount]):
        self.template = template

    async def organization_exists(self, organization_id: str) -> bool:
        return organization_id == PREVIEW_ORGANIZATION

    async def get_existing_codes(self, organization_id: str) -> Set[str]:
        return set()

    async def bulk_create(self, organization_id: str, accounts: List[AccountCreate]) -> BulkCreationResult:
        raise RuntimeError("Offline preview never creates accounts")

    async def load_template(self, business_type: str) -> List[TemplateAccount]:
        return self.template


def read_legacy_accounts(path: Path) -> List[LegacyAccount]:
    accounts = []

    with path.open(newline="", encoding="utf-8-sig") as handle:
        for line_number, row in enumerate(csv.DictReader(handle), start=2):
            balance = None
            if row.get("balance"):
                try:
                    balance = Decimal(row["balance"].replace(",", ""))
                except InvalidOperation:
                    logger.warning("invalid_balance_ignored", line=line_number, value=row["balance"])

            accounts.append(LegacyAccount(
                original_code=row.get("code", ""),
                original_name=row.get("name", ""),
                original_type=row.get("type") or None,
                description=row.get("description") or None,
                balance=balance,
            ))

    return accounts


def read_template(path: Path) -> List[TemplateAccount]:
    with path.open(encoding="utf-8") as handle:
        return [TemplateAccount.model_validate(item) for item in json.load(handle)]


async def main():
    parser = argparse.ArgumentParser(description="Preview a legacy chart-of-accounts migration")
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--template", type=Path, default=None, help="JSON template accounts")
    args = parser.parse_args()

    if not args.csv_path.exists():
        print(f'❌ CSV not found: {args.csv_path}')
        sys.exit(1)

    accounts = read_legacy_accounts(args.csv_path)
    template = read_template(args.template) if args.template else []

    service = MigrationService(InMemoryRepository(template))
    result = await service.preview(MigrationRequest(
        organization_id=PREVIEW_ORGANIZATION,
        accounts=accounts,
        mapping_strategy=MappingStrategy.NAME_BASED,
    ))

    print('='*80)
    print(f'MIGRATION PREVIEW: {args.csv_path.name}')
    print('='*80)
    print()

    for mapped in result.mapped_accounts:
        original = mapped.original_account
        suggestion = mapped.suggested_mapping
        marker = {'ready': '✓', 'manual_review': '?', 'conflict': '✗'}[mapped.status.value]

        print(f'{marker} {original.original_code:<10} {original.original_name[:30]:<30} '
              f'→ {suggestion.account_code} {suggestion.account_type.value:<22} '
              f'{suggestion.confidence:.0%}')
        print(f'    {suggestion.rationale}')
        if mapped.conflicts:
            print(f'    Conflicts: {", ".join(mapped.conflicts)}')

    print()
    print(f'Total: {result.total_accounts}  Ready: {result.mapped}  '
          f'Review: {result.manual_review}  Conflicts: {result.conflicts}')
    print()
    print('By type:')
    for account_type, count in sorted(result.summary.by_new_type.items()):
        print(f'  {account_type:<22} {count}')
    print('Confidence:')
    for bucket, count in result.summary.confidence_distribution.items():
        print(f'  {bucket:<16} {count}')


if __name__ == "__main__":
    asyncio.run(main())
