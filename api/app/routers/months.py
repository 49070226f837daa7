import asyncio
import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_client
from app.schemas.monthly_package import (
    MonthCreate,
    PackageResponse,
    PackageSummary,
    StatementResponse,
)
from app.services import lifecycle
from app.services.blob_store import BlobStore, get_blob_store
from app.services.clients import list_institutions
from app.services.notifications import dispatch_notifications
from app.services.scoping import Caller
from app.services.uploads import parse_metadata, read_upload

router = APIRouter(tags=["months"])


# ─── Packages ─────────────────────────────────────────────────────────────────

@router.get("/months", response_model=list[PackageSummary])
async def list_months(
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.list_packages(db, caller)


@router.post("/months", response_model=PackageResponse, status_code=201)
async def create_month(
    payload: MonthCreate,
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
):
    """Create-or-get: 201 with the new package, 409 with the existing one."""
    pkg, created = await lifecycle.ensure_package(db, caller, payload.month, payload.year)
    if created:
        return pkg
    body = PackageResponse.model_validate(pkg)
    return JSONResponse(status_code=409, content=jsonable_encoder(body))


@router.get("/months/{package_id}", response_model=PackageResponse)
async def get_month(
    package_id: uuid.UUID,
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.get_package_detail(db, caller, package_id)


@router.post("/months/{package_id}/submit", response_model=PackageResponse)
async def submit_month(
    package_id: uuid.UUID,
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
):
    pkg, pending = await lifecycle.submit_package(db, caller, package_id)
    await db.commit()
    await asyncio.to_thread(dispatch_notifications, pending)
    return pkg


# ─── Statements ───────────────────────────────────────────────────────────────

@router.post(
    "/months/{package_id}/statements",
    response_model=StatementResponse,
    status_code=201,
)
async def upload_statement(
    package_id: uuid.UUID,
    file: UploadFile = File(...),
    institution_name: str = Form(""),
    account_last4: str = Form(""),
    institution_type: str = Form(""),
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    metadata = parse_metadata(
        institution_name=institution_name,
        account_last4=account_last4,
        institution_type=institution_type,
    )
    upload = await read_upload(file)
    return await lifecycle.add_statement(db, caller, blob_store, package_id, metadata, upload)


@router.delete("/months/{package_id}/statements/{statement_id}")
async def delete_statement(
    package_id: uuid.UUID,
    statement_id: uuid.UUID,
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    await lifecycle.remove_statement(db, caller, blob_store, package_id, statement_id)
    return {"success": True}


# ─── Institutions ─────────────────────────────────────────────────────────────

@router.get("/institutions", response_model=list[str])
async def get_institutions(
    caller: Caller = Depends(require_client),
    db: AsyncSession = Depends(get_db),
):
    """Institution names this client has uploaded before (for autocomplete)."""
    return await list_institutions(db, caller)
