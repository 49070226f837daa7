import asyncio
import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import require_bookkeeper
from app.schemas.monthly_package import (
    ClientSummary,
    PackageResponse,
    PackageSummary,
    StatusUpdate,
    StatusUpdateResponse,
)
from app.services import lifecycle
from app.services.blob_store import BlobStore, get_blob_store
from app.services.bundling import build_bundle
from app.services.clients import list_clients
from app.services.notifications import dispatch_notifications
from app.services.scoping import Caller

router = APIRouter(prefix="/bookkeeper", tags=["bookkeeper"])


@router.get("/clients", response_model=list[ClientSummary])
async def get_clients(
    search: str | None = None,
    status_filter: str | None = Query(None, alias="filter"),
    caller: Caller = Depends(require_bookkeeper),
    db: AsyncSession = Depends(get_db),
):
    return await list_clients(db, caller, search=search, status_filter=status_filter)


@router.get("/clients/{client_id}/months", response_model=list[PackageSummary])
async def get_client_months(
    client_id: uuid.UUID,
    caller: Caller = Depends(require_bookkeeper),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.list_packages(db, caller, client_id=client_id)


@router.get("/clients/{client_id}/months/{package_id}", response_model=PackageResponse)
async def get_client_month(
    client_id: uuid.UUID,
    package_id: uuid.UUID,
    caller: Caller = Depends(require_bookkeeper),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.get_package_detail(db, caller, package_id, client_id=client_id)


@router.put(
    "/clients/{client_id}/months/{package_id}/status",
    response_model=StatusUpdateResponse,
)
async def update_client_month_status(
    client_id: uuid.UUID,
    package_id: uuid.UUID,
    payload: StatusUpdate,
    caller: Caller = Depends(require_bookkeeper),
    db: AsyncSession = Depends(get_db),
):
    pkg, pending = await lifecycle.set_package_status(
        db, caller, client_id, package_id, payload.status
    )
    await db.commit()
    await asyncio.to_thread(dispatch_notifications, pending)
    return StatusUpdateResponse(status=pkg.status)


@router.get("/clients/{client_id}/months/{package_id}/download")
async def download_client_month(
    client_id: uuid.UUID,
    package_id: uuid.UUID,
    caller: Caller = Depends(require_bookkeeper),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    bundle = await build_bundle(db, caller, blob_store, client_id, package_id)
    # Quotes and backslashes would end the quoted-string early
    ascii_name = (
        bundle.filename.encode("ascii", "ignore").decode().replace('"', "").replace("\\", "")
        or "statements.zip"
    )
    return Response(
        content=bundle.content,
        media_type="application/zip",
        headers={
            "Content-Disposition": (
                f'attachment; filename="{ascii_name}"; '
                f"filename*=UTF-8''{quote(bundle.filename)}"
            )
        },
    )
