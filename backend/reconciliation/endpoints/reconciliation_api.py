"""
Reconciliation API Endpoints

REST API for the reconciliation engine:
- GET /api/reconciliation/status - Module status
- GET /api/reconciliation/statement-types - Matching policy per statement type
- POST /api/reconciliation/folders/{folder_id}/run - Run reconciliation for a folder
- GET /api/reconciliation/folders/{folder_id}/stats - Folder statistics
- POST /api/reconciliation/transactions/{transaction_id}/link - Manually link a document
- POST /api/reconciliation/transactions/{transaction_id}/unlink - Unlink a document
- POST /api/reconciliation/candidates/{transaction_id} - Preview scored candidates
"""

import logging
from typing import Optional, List
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Header
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database.connection import get_db
from reconciliation.errors import ReconciliationError
from reconciliation.statement_registry import statement_registry
from reconciliation.services.reconciliation_service import ReconciliationService
from reconciliation.storage import SQLAlchemyReconciliationStore
from utils.validation_errors import http_error_for, validate_required_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


# ==================== Request/Response Models ====================

class LinkDocumentRequest(BaseModel):
    """Request to manually link a transaction to a document."""
    document_id: str = Field(..., description="Receipt or invoice ID")
    document_type: str = Field(..., description="Document type (receipt, invoice)")


class ReconciliationRunResponse(BaseModel):
    """Response for a reconciliation run."""
    run_id: str
    folder_id: str
    statement_type: str
    total_considered: int
    matched_count: int
    newly_matched: int
    exception_count: int
    compliance_score: int
    matches: List[dict]


class ReconciliationStatsResponse(BaseModel):
    """Response for folder reconciliation statistics."""
    folder_id: str
    total_transactions: int
    matched_transactions: int
    exception_transactions: int
    fee_transactions: int
    pending_transactions: int
    fee_total: float
    receipts_count: int
    invoices_count: int
    compliance_score: float
    statement_type: Optional[str]


# ==================== Dependencies ====================

def verify_internal_auth(x_internal_api_key: Optional[str] = Header(None, alias="X-Internal-Api-Key")):
    """Verify internal API key authentication."""
    valid_keys = get_settings().internal_api_keys

    if not valid_keys:
        logger.warning("No internal API keys configured")
        raise HTTPException(status_code=503, detail="Internal authentication not configured")

    if not x_internal_api_key:
        raise HTTPException(status_code=401, detail="Missing X-Internal-Api-Key header")

    if x_internal_api_key not in valid_keys:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return True


def get_reconciliation_service(db: AsyncSession = Depends(get_db)) -> ReconciliationService:
    """Service bound to the request's database session."""
    return ReconciliationService(
        SQLAlchemyReconciliationStore(db),
        auto_reconcile=get_settings().AUTO_RECONCILE_ON_UPLOAD
    )


# ==================== Endpoints ====================

@router.get("/status", summary="Module status")
async def get_module_status():
    """
    Get reconciliation module status.
    """
    return {
        "module": "reconciliation",
        "status": "operational",
        "version": "1.0.0",
        "features": {
            "receipt_matching": True,
            "invoice_matching": True,
            "manual_override": True,
            "compliance_scoring": True
        },
        "statement_types": [cfg.statement_type.value for cfg in statement_registry.get_all_configs()],
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/statement-types", summary="List statement type policies")
async def list_statement_types():
    """
    List the matching policy (weights, tolerances, threshold) per statement type.
    """
    configs = statement_registry.get_all_configs()
    return {
        "statement_types": [cfg.to_dict() for cfg in configs],
        "count": len(configs)
    }


@router.post(
    "/folders/{folder_id}/run",
    response_model=ReconciliationRunResponse,
    summary="Run reconciliation"
)
async def run_reconciliation(
    folder_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    _auth: bool = Depends(verify_internal_auth)
):
    """
    Run reconciliation for a folder.

    This will:
    1. Load the folder's non-FEE transactions
    2. Match them against receipts (CARD) or invoices (BANK)
    3. Mark unmatched transactions as EXCEPTION
    4. Recompute the folder's compliance score

    Requires internal API key authentication.
    """
    validated_folder_id = validate_required_uuid(folder_id, "folder_id")

    try:
        result = await service.reconcile(validated_folder_id)
        return ReconciliationRunResponse(**result.to_dict())

    except ReconciliationError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Reconciliation run failed: {e}")
        raise HTTPException(status_code=500, detail="Reconciliation run failed")


@router.get(
    "/folders/{folder_id}/stats",
    response_model=ReconciliationStatsResponse,
    summary="Get folder stats"
)
async def get_stats(
    folder_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    _auth: bool = Depends(verify_internal_auth)
):
    """
    Get reconciliation statistics for a folder.

    Requires internal API key authentication.
    """
    validated_folder_id = validate_required_uuid(folder_id, "folder_id")

    try:
        stats = await service.get_stats(validated_folder_id)
        return ReconciliationStatsResponse(**stats)

    except ReconciliationError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Failed to get stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to get statistics")


@router.post("/transactions/{transaction_id}/link", summary="Link document")
async def link_document(
    transaction_id: str,
    request: LinkDocumentRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
    x_user_id: Optional[str] = Header(default="system", alias="X-User-Id"),
    _auth: bool = Depends(verify_internal_auth)
):
    """
    Manually link a transaction to a receipt or invoice.

    The transaction becomes MATCHED regardless of its score.

    Requires internal API key authentication.
    """
    validated_transaction_id = validate_required_uuid(transaction_id, "transaction_id")

    try:
        result = await service.link(
            transaction_id=validated_transaction_id,
            document_id=request.document_id,
            document_type=request.document_type,
            actor=x_user_id
        )

        return {
            "success": True,
            "message": "Document linked",
            "transaction": result
        }

    except ReconciliationError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Failed to link document: {e}")
        raise HTTPException(status_code=500, detail="Failed to link document")


@router.post("/transactions/{transaction_id}/unlink", summary="Unlink document")
async def unlink_document(
    transaction_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    x_user_id: Optional[str] = Header(default="system", alias="X-User-Id"),
    _auth: bool = Depends(verify_internal_auth)
):
    """
    Unlink any document from a transaction and mark it EXCEPTION.

    Requires internal API key authentication.
    """
    validated_transaction_id = validate_required_uuid(transaction_id, "transaction_id")

    try:
        result = await service.unlink(validated_transaction_id, actor=x_user_id)

        return {
            "success": True,
            "message": "Document unlinked",
            "transaction": result
        }

    except ReconciliationError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Failed to unlink document: {e}")
        raise HTTPException(status_code=500, detail="Failed to unlink document")


@router.post("/candidates/{transaction_id}", summary="Preview match candidates")
async def find_candidates(
    transaction_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    _auth: bool = Depends(verify_internal_auth)
):
    """
    Score the documents a transaction could be matched to.

    Returns scored candidates without changing anything.

    Requires internal API key authentication.
    """
    validated_transaction_id = validate_required_uuid(transaction_id, "transaction_id")

    try:
        result = await service.find_candidates(validated_transaction_id)
        return result.to_dict()

    except ReconciliationError as e:
        raise http_error_for(e)
    except Exception as e:
        logger.error(f"Failed to find candidates: {e}")
        raise HTTPException(status_code=500, detail="Failed to find candidates")
