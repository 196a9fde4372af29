"""
Storefront upload API client for variant images.
"""

import io
import logging
from pathlib import Path
from typing import Optional, Dict, List
import httpx
from PIL import Image as PILImage, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Keys the upload endpoint may return the stored image URL under
URL_KEYS = ("url", "imageUrl")


class UploadError(Exception):
    """Image upload failed."""

    def __init__(self, message: str, uploaded: Optional[List[str]] = None):
        super().__init__(message)
        self.uploaded = list(uploaded or [])

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)


class InvalidImageError(UploadError):
    """File rejected locally before upload (empty or not an image)."""
    pass


class UploadClient:
    """
    Async client for the storefront's single-file upload endpoint.
    """

    def __init__(
        self,
        store_url: str,
        upload_path: str = "/api/upload",
        api_token: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize upload client.

        Args:
            store_url: Storefront base URL
            upload_path: Upload endpoint path
            api_token: Optional bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.store_url = store_url.rstrip("/")
        self.upload_url = f"{self.store_url}/{upload_path.lstrip('/')}"

        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        # No default Content-Type: httpx sets the multipart boundary
        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
            transport=transport
        )

    async def upload_image(
        self,
        file_name: str,
        content: bytes,
        content_type: Optional[str] = None
    ) -> str:
        """
        Upload one image file.

        Args:
            file_name: Original file name
            content: File bytes
            content_type: MIME type; guessed from the extension when missing

        Returns:
            Stored image URL

        Raises:
            UploadError: Not an image, HTTP error, or unexpected response
        """
        self._validate_image(file_name, content)

        content_type = content_type or self._get_content_type(file_name)
        files = {"file": (file_name, content, content_type)}

        try:
            r = await self.client.post(self.upload_url, files=files)
        except httpx.RequestError as e:
            raise UploadError(f"Upload failed: {str(e)}")

        if r.status_code not in (200, 201):
            raise UploadError(f"Upload failed: HTTP {r.status_code} {r.reason_phrase}")

        try:
            data = r.json()
        except ValueError:
            raise UploadError("Invalid response format from server")

        url = self._extract_url(data)
        if not url:
            logger.error(f"Unexpected response format from upload API: {str(data)[:200]}")
            raise UploadError("Invalid response format from server")

        return url

    @staticmethod
    def _extract_url(data: Dict) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        for key in URL_KEYS:
            if data.get(key):
                return data[key]
        return None

    @staticmethod
    def _validate_image(file_name: str, content: bytes):
        """Reject files Pillow cannot identify as an image."""
        if not content:
            raise InvalidImageError(f"{file_name} is empty")
        try:
            with PILImage.open(io.BytesIO(content)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise InvalidImageError(f"{file_name} is not a valid image: {str(e)}")

    def _get_content_type(self, file_name: str) -> str:
        """Guess content type from file extension."""
        ext = Path(file_name).suffix.lower()
        content_types = {
            '.jpg': 'image/jpeg',
            '.jpeg': 'image/jpeg',
            '.png': 'image/png',
            '.gif': 'image/gif',
            '.webp': 'image/webp',
        }
        return content_types.get(ext, 'application/octet-stream')

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
