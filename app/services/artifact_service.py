"""
app/services/artifact_service.py

Purpose: Member artifacts (QR codes and photos)

- Renders the member URL as a PNG QR code
- Uploads images to Cloudinary (signed upload, overwrite by public_id)
"""

import asyncio
import hashlib
import io
from typing import Any, Dict, Optional

import httpx
import qrcode
from qrcode.constants import ERROR_CORRECT_M

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from utils.time_utils import unix_timestamp, utcnow

logger = get_logger(__name__)


def render_qr_png(payload_url: str, size: int, margin: int = 2) -> bytes:
    """
    Renders `payload_url` as a black-on-white PNG QR code about `size`
    pixels wide (rounded down to whole modules).
    """
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=1, border=margin)
    qr.add_data(payload_url)
    qr.make(fit=True)
    qr.box_size = max(1, size // (qr.modules_count + 2 * margin))

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def cloudinary_signature(params: Dict[str, Any], api_secret: str) -> str:
    """
    Cloudinary request signature: SHA-1 of the sorted `key=value` pairs
    joined with '&', followed by the API secret.
    """
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryArtifactService:
    """Service for generating and hosting member images"""

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name or settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key or settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret or settings.CLOUDINARY_API_SECRET
        self.api_base_url = (api_base_url or settings.CLOUDINARY_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    async def generate_code(self, payload_url: str, size: int) -> bytes:
        # Rendering is CPU-bound; keep it off the event loop
        return await asyncio.to_thread(render_qr_png, payload_url, size, settings.QR_CODE_MARGIN)

    async def upload(self, content: bytes, folder: str, key: str, content_type: str = "image/png") -> str:
        """
        Uploads `content` as `{folder}/{key}`, replacing any existing asset.

        Returns:
            The asset's HTTPS URL

        Raises:
            ExternalServiceError: If Cloudinary is not configured, rejects the upload or times out
        """
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise ExternalServiceError("Cloudinary is not configured", code="STORAGE_NOT_CONFIGURED")

        params = {
            "folder": folder,
            "overwrite": "true",
            "public_id": key,
            "timestamp": unix_timestamp(utcnow()),
        }
        data = {**params, "api_key": self.api_key, "signature": cloudinary_signature(params, self.api_secret)}
        url = f"{self.api_base_url}/{self.cloud_name}/image/upload"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    data={name: str(value) for name, value in data.items()},
                    files={"file": (key, content, content_type)},
                )
        except httpx.TimeoutException as e:
            logger.error(f"Cloudinary upload timeout: {folder}/{key}")
            raise ExternalServiceError("Cloudinary upload timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"Cloudinary upload failed: {e}")
            raise ExternalServiceError(f"Cloudinary upload failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"❌ Cloudinary error: {response.status_code} - {response.text[:200]}")
            raise ExternalServiceError(
                f"Cloudinary error: {response.status_code}",
                details={"status_code": response.status_code},
            )

        secure_url = response.json().get("secure_url")
        if not secure_url:
            raise ExternalServiceError("Cloudinary response has no secure_url")

        logger.info(f"✅ Uploaded {folder}/{key}")
        return secure_url
