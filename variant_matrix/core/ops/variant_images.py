"""
Variant image upload operations.
"""

import logging
from typing import List, Optional, Tuple

from variant_matrix.core.events import UploadEventEmitter
from variant_matrix.core.matrix import VariantMatrix, RowNotFoundError
from variant_matrix.core.session_store import RedisSessionStore
from variant_matrix.core.upload_client import UploadClient, UploadError

logger = logging.getLogger(__name__)

# (file name, content, content type)
UploadFileData = Tuple[str, bytes, Optional[str]]


async def upload_files(
    upload_client: UploadClient,
    files: List[UploadFileData],
    row_id: str = "",
    emitter: Optional[UploadEventEmitter] = None
) -> List[str]:
    """
    Upload files one at a time, in order.

    The first failure stops the batch; the URLs uploaded before it travel on
    the raised UploadError.

    Args:
        upload_client: UploadClient instance
        files: Files to upload
        row_id: Row the files belong to (for progress events)
        emitter: Optional progress emitter

    Returns:
        Uploaded image URLs in file order

    Raises:
        UploadError: A file failed; `uploaded` holds the earlier URLs
    """
    uploaded: List[str] = []
    total = len(files)

    for i, (file_name, content, content_type) in enumerate(files):
        try:
            url = await upload_client.upload_image(file_name, content, content_type)
        except UploadError as e:
            message = f"{str(e)} ({len(uploaded)} of {total} images uploaded)"
            logger.error(f"Image upload failed for row {row_id}, file {file_name}: {message}")
            raise type(e)(message, uploaded=uploaded)

        uploaded.append(url)
        if emitter:
            await emitter.emit_progress(row_id, i + 1, total)

    logger.info(f"Successfully uploaded {len(uploaded)} images for row {row_id}")
    return uploaded


def _finish_upload(matrix: VariantMatrix, row_id: str, urls: List[str]):
    matrix.end_upload()
    if not urls:
        return
    try:
        matrix.attach_images(row_id, urls)
    except RowNotFoundError:
        logger.warning(f"Row {row_id} disappeared during upload; dropping {len(urls)} uploaded images")


async def upload_row_images(
    store: RedisSessionStore,
    session_id: str,
    row_id: str,
    files: List[UploadFileData],
    upload_client: UploadClient,
    emitter: Optional[UploadEventEmitter] = None
) -> List[str]:
    """
    Upload files and attach them to a row of a stored session.

    The session is flagged as uploading for the duration, which makes row
    regeneration a no-op until the images are attached. Both flag writes and
    the attachment are transactional updates, so edits made during the
    upload are kept.

    Args:
        store: Session store
        session_id: Matrix session ID
        row_id: Target row ID
        files: Files to upload
        upload_client: UploadClient instance
        emitter: Optional progress emitter

    Returns:
        URLs attached to the row

    Raises:
        SessionNotFoundError / RowNotFoundError: Unknown session or row
        UploadError: A file failed; earlier files are still attached
    """
    await store.update(session_id, lambda m: m.begin_upload(row_id))

    if emitter:
        await emitter.emit_status(row_id, "started", total=len(files))

    urls: List[str] = []
    failure: Optional[UploadError] = None
    try:
        urls = await upload_files(upload_client, files, row_id, emitter)
    except UploadError as e:
        failure = e
        urls = e.uploaded
    finally:
        await store.update(session_id, lambda m: _finish_upload(m, row_id, urls))

    if failure:
        if emitter:
            await emitter.emit_status(row_id, "failed", uploaded=failure.uploaded_count, total=len(files), error=str(failure))
        raise failure

    if emitter:
        await emitter.emit_status(row_id, "done", uploaded=len(urls), total=len(files))
    return urls
