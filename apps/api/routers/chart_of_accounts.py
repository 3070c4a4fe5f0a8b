"""
Chart of Accounts API - Legacy account migration and template statistics

Migration flow:
1. POST /migrate-legacy with migrationMode=preview → suggested mappings, nothing written
2. Review conflicts / manual_review accounts, add customMappings
3. POST again with migrationMode=execute → ready accounts created

Request and response bodies use camelCase field names.
"""
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from packages.common.coa_repository import SqlChartOfAccountsRepository
from packages.common.config import get_settings
from packages.common.database import get_db_session
from packages.domain.coa_migration.errors import (
    BulkCreationError,
    MigrationConflictError,
    MigrationError,
    MigrationValidationError,
    OrganizationNotFoundError,
)
from packages.domain.coa_migration.migration_service import MigrationService
from packages.domain.coa_migration.repository import ChartOfAccountsRepository
from packages.domain.coa_migration.schemas import MigrationExecution, MigrationRequest
from packages.domain.coa_migration.semantic_oracle import SemanticOracle, get_semantic_oracle
from packages.domain.coa_migration.template_index import TemplateIndex

logger = structlog.get_logger()
router = APIRouter(prefix="/chart-of-accounts", tags=["Chart of Accounts"])


async def get_coa_repository(
    db: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[ChartOfAccountsRepository, None]:
    yield SqlChartOfAccountsRepository(db)


def get_migration_oracle() -> Optional[SemanticOracle]:
    return get_semantic_oracle()


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid request: {location}: {first.get('msg')}" if location else f"Invalid request: {first.get('msg')}"


@router.post("/migrate-legacy")
async def migrate_legacy_accounts(
    payload: Dict[str, Any] = Body(...),
    repository: ChartOfAccountsRepository = Depends(get_coa_repository),
    oracle: Optional[SemanticOracle] = Depends(get_migration_oracle),
) -> Dict[str, Any]:
    """
    Preview or execute a legacy chart-of-accounts migration.

    Errors:
    - 400: missing organizationId, invalid accounts, 0 or too many accounts
    - 404: unknown organization
    - 409: conflictResolution=fail and conflicts were found (execute)
    - 500: bulk creation or unexpected failure
    """
    # Body is validated here so schema errors surface as 400 like the batch checks
    try:
        request = MigrationRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning("migration_request_invalid", errors=e.errors(include_url=False))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_message(e))

    settings = get_settings()
    service = MigrationService(
        repository,
        oracle=oracle,
        max_accounts=settings.migration_max_accounts,
        oracle_timeout=settings.oracle_timeout_seconds,
        default_business_type=settings.default_business_type,
    )

    try:
        outcome = await service.run(request)

    except MigrationValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    except OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    except MigrationConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "conflictingCodes": e.conflicting_codes,
            },
        )

    except BulkCreationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    except MigrationError as e:
        logger.error("migration_failed",
                     organization_id=request.organization_id,
                     error=str(e),
                     exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process legacy account migration",
        )

    if isinstance(outcome, MigrationExecution):
        attention = len(outcome.conflicts_requiring_attention)
        message = (
            f"Migration completed: {outcome.bulk_creation_result.created} accounts created, "
            f"{attention} require attention"
        )
    else:
        ready = f"{outcome.mapped} ready"
        if outcome.merged:
            ready += f" ({outcome.merged} merged into existing accounts)"
        message = (
            f"Migration preview: {ready}, {outcome.conflicts} conflicts, "
            f"{outcome.manual_review} need review"
        )

    return {
        "success": True,
        "data": outcome.model_dump(by_alias=True, mode="json"),
        "message": message,
    }


@router.get("/templates/{business_type}/stats")
async def get_template_stats(
    business_type: str,
    repository: ChartOfAccountsRepository = Depends(get_coa_repository),
) -> Dict[str, Any]:
    """Counts by account type and priority for a business-type template."""
    accounts = await repository.load_template(business_type)

    if not accounts:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No template found for business type: {business_type}",
        )

    stats = TemplateIndex(accounts).stats()

    return {
        "success": True,
        "data": stats.model_dump(by_alias=True, mode="json"),
    }
