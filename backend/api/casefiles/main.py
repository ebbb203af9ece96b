"""FastAPI application exposing upload, retrieval, listing, and deletion of case documents."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import Settings, settings as default_settings
from .services import DocumentGateway, StorageError, StorageKind

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600
MAX_EXPIRY_HOURS = 7 * 24


def get_gateway(request: Request) -> DocumentGateway:
    return request.app.state.gateway


GatewayDep = Annotated[DocumentGateway, Depends(get_gateway)]

router = APIRouter()


@router.post("/upload")
async def upload_document(
    gateway: GatewayDep,
    file: Annotated[UploadFile | None, File()] = None,
    client_id: Annotated[str | None, Form(alias="clientID")] = None,
    doc_type: Annotated[str | None, Form(alias="docType")] = None,
) -> dict[str, Any]:
    """Upload one document for a client, cloud first."""
    if file is None:
        return await run_in_threadpool(gateway.upload, None, None, None, client_id, doc_type)

    # One byte past the limit is enough to reject without buffering the rest.
    data = await file.read(gateway.max_upload_bytes + 1)
    return await run_in_threadpool(
        gateway.upload, file.filename, data, file.content_type, client_id, doc_type
    )


@router.get("/file/download-url")
async def download_url(
    gateway: GatewayDep,
    blob_name: Annotated[str, Query(alias="blobName")] = "",
    expiry_hours: Annotated[
        float, Query(alias="expiryHours", gt=0, le=MAX_EXPIRY_HOURS, allow_inf_nan=False)
    ] = 1,
) -> dict[str, Any]:
    """Return a time-limited URL for a private document."""
    expires_in = int(expiry_hours * SECONDS_PER_HOUR)
    return await run_in_threadpool(gateway.download_url, blob_name, expires_in)


@router.get("/file/{file_name}")
async def get_file(
    file_name: str,
    gateway: GatewayDep,
    blob_name: Annotated[str | None, Query(alias="blobName")] = None,
) -> dict[str, Any]:
    """Return document metadata; ``blobName`` takes precedence over the path."""
    return await run_in_threadpool(gateway.retrieve, blob_name or file_name)


@router.get("/list")
async def list_files(gateway: GatewayDep) -> dict[str, Any]:
    """List every document on the active backend."""
    return await run_in_threadpool(gateway.list_all)


@router.get("/files/{client_id}")
async def list_client_files(client_id: str, gateway: GatewayDep) -> JSONResponse:
    """List one client's documents. Empty when only local storage is available."""
    outcome = await run_in_threadpool(gateway.list_client, client_id)
    headers = {}
    if outcome.backend is StorageKind.LOCAL:
        headers["X-Storage-Note"] = "client listing unsupported by local storage"
    return JSONResponse(content=jsonable_encoder(outcome.value), headers=headers)


@router.delete("/file/{file_name}")
async def delete_file(
    file_name: str,
    gateway: GatewayDep,
    blob_name: Annotated[str | None, Query(alias="blobName")] = None,
) -> dict[str, Any]:
    """Delete a document from whichever backend holds it."""
    return await run_in_threadpool(gateway.delete, blob_name or file_name)


@router.get("/health", response_model=None)
async def health(gateway: GatewayDep) -> dict[str, Any] | JSONResponse:
    """Readiness probe that reports the resolved storage configuration."""
    try:
        return await run_in_threadpool(gateway.health)
    except StorageError as exc:
        logger.error("Storage health check failed: %s", exc.message)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "azureBlobEnabled": False,
                "cloudStorageEnabled": False,
                "message": exc.message,
            },
        )


async def serve_local_upload(file_name: str, gateway: GatewayDep) -> FileResponse:
    """Serve a document kept by the local fallback backend."""
    stored = await run_in_threadpool(gateway.local.get_metadata, file_name)
    return FileResponse(gateway.local.path_for(file_name), media_type=stored.content_type)


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Invalid request",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500, content={"success": False, "message": "Internal server error"}
    )


def create_app(
    settings: Settings | None = None, gateway: DocumentGateway | None = None
) -> FastAPI:
    """Build the API around an explicitly constructed gateway."""
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Case Files API", version="0.1.0")
    app.state.gateway = gateway or DocumentGateway.from_settings(settings)

    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router, prefix=settings.api_prefix.rstrip("/"))
    if settings.serve_local_uploads:
        app.add_api_route("/uploads/{file_name}", serve_local_upload, methods=["GET"])
    return app


app = create_app()
