"""
Performance API Endpoints

Read the displayed result, trigger a refresh, or recompute from uploaded
files.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
import structlog

from sales_dashboard.ingestion.readers import CSV_EXTENSIONS, SPREADSHEET_EXTENSIONS
from sales_dashboard.serving.api.dependencies import get_coordinator
from sales_dashboard.serving.refresh import (
    DisplaySnapshot,
    RefreshCoordinator,
    RefreshFailedError,
    RefreshInProgressError,
    RefreshTrigger,
)
from sales_dashboard.serving.strategies import UploadedSourcesStrategy
from sales_dashboard.transformation.models import CachedResult, Performance

router = APIRouter()
logger = structlog.get_logger(__name__)


class SnapshotResponse(BaseModel):
    """Displayed result and refresh status"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    state: str
    source: Optional[str]
    trigger: Optional[str]
    last_error: Optional[str]
    updated_at: datetime
    data: Optional[CachedResult]

    @classmethod
    def from_snapshot(cls, snapshot: DisplaySnapshot) -> "SnapshotResponse":
        return cls(
            state=snapshot.state.value,
            source=snapshot.source,
            trigger=snapshot.trigger.value if snapshot.trigger else None,
            last_error=snapshot.last_error,
            updated_at=snapshot.updated_at,
            data=snapshot.result,
        )


@router.get("", response_model=SnapshotResponse)
async def get_performance(
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> SnapshotResponse:
    """Current performances, summary and refresh state."""
    return SnapshotResponse.from_snapshot(coordinator.snapshot)


@router.get("/customers/{customer_code}", response_model=Performance)
async def get_customer_performance(
    customer_code: str,
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> Performance:
    """One customer's performance with its product breakdown."""
    result = coordinator.current
    performance = result.find(customer_code) if result is not None else None
    if performance is None:
        raise HTTPException(status_code=404, detail=f"Customer {customer_code} not found")
    return performance


@router.post("/refresh", response_model=SnapshotResponse)
async def refresh_performance(
    response: Response,
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> SnapshotResponse:
    """
    Recompute from the configured sources.

    Answers 202 with the current snapshot when a recompute is already
    running, and 502 when the recompute fails.
    """
    try:
        snapshot = await coordinator.refresh(RefreshTrigger.MANUAL, coalesce=False)
    except RefreshInProgressError:
        response.status_code = status.HTTP_202_ACCEPTED
        return SnapshotResponse.from_snapshot(coordinator.snapshot)
    except RefreshFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return SnapshotResponse.from_snapshot(snapshot)


def _check_extension(upload: UploadFile, allowed: tuple, label: str) -> str:
    name = upload.filename or ""
    if not name.lower().endswith(allowed):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Please select a valid {label} file ({', '.join(allowed)}): {name or '<unnamed>'}",
        )
    return name


@router.post("/upload", response_model=SnapshotResponse)
async def upload_sources(
    agreements: UploadFile = File(..., description="Customer agreement registry (CSV)"),
    sales: List[UploadFile] = File(..., description="Sales extracts (Excel)"),
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> SnapshotResponse:
    """Recompute from uploaded files and publish the result to both caches."""
    agreement_name = _check_extension(agreements, CSV_EXTENSIONS, "CSV")
    sales_names = [_check_extension(upload, SPREADSHEET_EXTENSIONS, "Excel") for upload in sales]

    agreement_bytes = await agreements.read()
    sales_bytes = [await upload.read() for upload in sales]

    strategy = UploadedSourcesStrategy(
        agreements=(agreement_name, agreement_bytes),
        sales=list(zip(sales_names, sales_bytes)),
    )
    logger.info("Processing uploaded files", agreements=agreement_name, sales=sales_names)

    try:
        snapshot = await coordinator.refresh(RefreshTrigger.MANUAL, strategies=[strategy], coalesce=False)
    except RefreshInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RefreshFailedError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return SnapshotResponse.from_snapshot(snapshot)
