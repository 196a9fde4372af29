"""
Variant Matrix API endpoints.
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File

from variant_matrix.deps import (
    get_session_store,
    get_upload_client,
    get_storefront_client,
    get_upload_events,
)
from variant_matrix.core.matrix import (
    VariantMatrix,
    PersistedVariant,
    MatrixValidationError,
    RowNotFoundError,
)
from variant_matrix.core.session_store import (
    MatrixSession,
    RedisSessionStore,
    SessionNotFoundError,
    SessionConflictError,
)
from variant_matrix.core.events import UploadEventEmitter
from variant_matrix.core.upload_client import UploadClient, UploadError, InvalidImageError
from variant_matrix.core.storefront_client import StorefrontClient, StorefrontError
from variant_matrix.core.ops.variant_images import upload_row_images
from variant_matrix.core.ops.save_variants import save_matrix_variants
from variant_matrix.schemas.common import ERROR_RESPONSES
from variant_matrix.schemas.matrix import (
    SessionCreateRequest,
    SessionResponse,
    AttributeValueRequest,
    RowUpdateRequest,
    CombinationRowSchema,
    BulkUpdateRequest,
    BulkUpdateResponse,
    ImageUrlRequest,
    BatchImageUrlsRequest,
    RowImagesResponse,
    UploadResponse,
    SaveRequest,
    SaveResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)


def _http_error(e: Exception) -> HTTPException:
    """Map domain errors to HTTP errors."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, (MatrixValidationError, InvalidImageError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, (SessionNotFoundError, RowNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SessionConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (UploadError, StorefrontError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    logger.exception(f"Unexpected error in variant matrix API: {str(e)}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal error: {str(e)}"
    )


def _session_response(session: MatrixSession) -> SessionResponse:
    data = session.matrix.to_dict()
    return SessionResponse(
        session_id=session.session_id,
        product_name=data["product_name"],
        step=data["step"],
        attributes=data["attributes"],
        rows=data["rows"],
        uploading_row=data["uploading_row"],
        created_at=session.created_at,
        updated_at=session.updated_at
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreateRequest,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Open a matrix session, seeded from the product's existing variants if any."""
    try:
        existing = [PersistedVariant.from_dict(v.model_dump()) for v in request.existing_variants]
        if existing:
            matrix = VariantMatrix.from_existing(request.product_name, existing)
        else:
            matrix = VariantMatrix(product_name=request.product_name)
        session = await store.create(matrix)
        return _session_response(session)
    except Exception as e:
        raise _http_error(e)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """Get matrix session state."""
    try:
        return _session_response(await store.get(session_id))
    except Exception as e:
        raise _http_error(e)


@router.delete("/{session_id}")
async def delete_session(session_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """Discard a matrix session."""
    try:
        if not await store.delete(session_id):
            raise SessionNotFoundError(f"Session {session_id} not found")
        return {"ok": True}
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/attributes/{attr_index}/values", response_model=SessionResponse)
async def add_attribute_value(
    session_id: str,
    attr_index: int,
    request: AttributeValueRequest,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Add a value to an attribute."""
    try:
        session, _ = await store.update(session_id, lambda m: m.add_value(attr_index, request.value))
        return _session_response(session)
    except Exception as e:
        raise _http_error(e)


@router.delete("/{session_id}/attributes/{attr_index}/values/{value_index}", response_model=SessionResponse)
async def remove_attribute_value(
    session_id: str,
    attr_index: int,
    value_index: int,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Remove an attribute value by position."""
    try:
        session, _ = await store.update(session_id, lambda m: m.remove_value(attr_index, value_index))
        return _session_response(session)
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/configure", response_model=SessionResponse)
async def configure_variants(session_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """Validate attributes and generate the variant rows."""
    try:
        session, _ = await store.update(session_id, lambda m: m.advance())
        return _session_response(session)
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/define", response_model=SessionResponse)
async def back_to_attributes(session_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """Return to attribute editing."""
    try:
        session, _ = await store.update(session_id, lambda m: m.back())
        return _session_response(session)
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/regenerate", response_model=SessionResponse)
async def regenerate_rows(session_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """Re-materialize rows (no-op while an upload is in flight)."""
    try:
        session, _ = await store.update(session_id, lambda m: m.regenerate())
        return _session_response(session)
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/rows/bulk", response_model=BulkUpdateResponse)
async def bulk_update_rows(
    session_id: str,
    request: BulkUpdateRequest,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Set price, MRP or stock on every row."""
    try:
        _, updated = await store.update(session_id, lambda m: m.bulk_update(request.field, request.value))
        return BulkUpdateResponse(field=request.field, updated=updated)
    except Exception as e:
        raise _http_error(e)


@router.patch("/{session_id}/rows/{row_id}", response_model=CombinationRowSchema)
async def update_row(
    session_id: str,
    row_id: str,
    request: RowUpdateRequest,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Set SKU, price, MRP or stock on one row."""
    try:
        _, row = await store.update(session_id, lambda m: m.update_row(row_id, request.field, request.value))
        return row.to_dict()
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/rows/{row_id}/toggle", response_model=CombinationRowSchema)
async def toggle_row(session_id: str, row_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """Enable or disable a row."""
    try:
        _, row = await store.update(session_id, lambda m: m.toggle_row(row_id))
        return row.to_dict()
    except Exception as e:
        raise _http_error(e)


@router.get("/{session_id}/rows/{row_id}/images", response_model=RowImagesResponse)
async def preview_row_images(session_id: str, row_id: str, store: RedisSessionStore = Depends(get_session_store)):
    """List a row's images for preview."""
    try:
        session = await store.get(session_id)
        return RowImagesResponse(row_id=row_id, images=session.matrix.preview_images(row_id))
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/rows/{row_id}/images/upload", response_model=UploadResponse)
async def upload_images(
    session_id: str,
    row_id: str,
    files: List[UploadFile] = File(...),
    store: RedisSessionStore = Depends(get_session_store),
    upload_client: UploadClient = Depends(get_upload_client),
    emitter: UploadEventEmitter = Depends(get_upload_events)
):
    """Upload image files one by one and attach them to a row."""
    try:
        file_data = []
        for file in files:
            file_data.append((file.filename or "image", await file.read(), file.content_type))

        urls = await upload_row_images(store, session_id, row_id, file_data, upload_client, emitter)
        session = await store.get(session_id)
        return UploadResponse(
            row_id=row_id,
            uploaded=len(urls),
            images=session.matrix.get_row(row_id).images
        )
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/rows/{row_id}/images/url", response_model=RowImagesResponse)
async def add_image_url(
    session_id: str,
    row_id: str,
    request: ImageUrlRequest,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Attach one image URL to a row."""
    try:
        _, row = await store.update(session_id, lambda m: m.add_image_url(row_id, request.url))
        return RowImagesResponse(row_id=row.id, images=row.images)
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/rows/{row_id}/images/batch", response_model=RowImagesResponse)
async def add_image_urls(
    session_id: str,
    row_id: str,
    request: BatchImageUrlsRequest,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Attach newline-delimited image URLs to a row (blank lines ignored)."""
    try:
        _, row = await store.update(session_id, lambda m: m.add_image_urls(row_id, request.urls))
        return RowImagesResponse(row_id=row.id, images=row.images)
    except Exception as e:
        raise _http_error(e)


@router.delete("/{session_id}/rows/{row_id}/images/{index}", response_model=RowImagesResponse)
async def remove_image(
    session_id: str,
    row_id: str,
    index: int,
    store: RedisSessionStore = Depends(get_session_store)
):
    """Remove a row image by position."""
    try:
        session, _ = await store.update(session_id, lambda m: m.remove_image(row_id, index))
        return RowImagesResponse(row_id=row_id, images=session.matrix.get_row(row_id).images)
    except Exception as e:
        raise _http_error(e)


@router.post("/{session_id}/save", response_model=SaveResponse)
async def save_variants(
    session_id: str,
    request: SaveRequest,
    store: RedisSessionStore = Depends(get_session_store),
    client: StorefrontClient = Depends(get_storefront_client)
):
    """Validate enabled rows and persist them to the storefront as one batch."""
    try:
        session = await store.get(session_id)
        result = await save_matrix_variants(session.matrix, request.product_id, client)
        return SaveResponse(
            product_id=result["product_id"],
            saved=result["saved"],
            variants=result["variants"]
        )
    except Exception as e:
        raise _http_error(e)
