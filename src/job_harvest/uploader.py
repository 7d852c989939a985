from __future__ import annotations

import hashlib
import logging
import re
import time
from collections.abc import Callable

import httpx

from job_harvest.config import Settings
from job_harvest.errors import UploadError
from job_harvest.models import JobRecord

logger = logging.getLogger(__name__)

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud}/raw/upload"


def clean_slug(value: str | None) -> str:
    if not value:
        return "unknown"
    slug = re.sub(r"[^a-z0-9]", "_", value.lower())
    slug = re.sub(r"_{2,}", "_", slug).strip("_")
    return slug or "unknown"


def sign_params(params: dict[str, str], api_secret: str) -> str:
    """Cloudinary signature: sorted ``k=v`` pairs joined by ``&``, secret appended, SHA-1."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key])
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryUploader:
    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.Client | None = None,
        now_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self.settings = settings
        self._client = client or httpx.Client(timeout=60.0)
        self._now_ms = now_ms

    @property
    def is_configured(self) -> bool:
        return all(
            (
                self.settings.cloudinary_cloud_name,
                self.settings.cloudinary_api_key,
                self.settings.cloudinary_api_secret,
            )
        )

    def build_params(self, record: JobRecord) -> dict[str, str]:
        millis = self._now_ms()
        company = clean_slug(record.company)
        return {
            "public_id": f"resumes/{company}_{clean_slug(record.role)}_{millis}",
            "tags": f"resume,job-application,{company}",
            "context": "|".join(
                (
                    f"company={record.company}",
                    f"role={record.role}",
                    f"source_channel={record.source_channel}",
                    f"generated_at={millis}",
                )
            ),
            "timestamp": str(millis // 1000),
        }

    def upload_pdf(self, pdf: bytes, record: JobRecord) -> str:
        if not pdf:
            raise UploadError("refusing to upload an empty document")
        if not self.is_configured:
            raise UploadError("object store credentials are not configured")

        params = self.build_params(record)
        params["signature"] = sign_params(params, self.settings.cloudinary_api_secret)
        params["api_key"] = self.settings.cloudinary_api_key

        url = UPLOAD_URL.format(cloud=self.settings.cloudinary_cloud_name)
        filename = params["public_id"].rsplit("/", 1)[-1] + ".pdf"
        logger.info("uploading resume for %s at %s", record.role, record.company)
        try:
            response = self._client.post(
                url,
                data=params,
                files={"file": (filename, pdf, "application/pdf")},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise UploadError(f"upload failed with HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"upload transport error: {exc}") from exc
        except ValueError as exc:
            raise UploadError("upload returned non-JSON body") from exc

        secure_url = payload.get("secure_url") if isinstance(payload, dict) else None
        if not secure_url:
            raise UploadError("upload succeeded but returned no URL")
        logger.info("resume uploaded (%d bytes): %s", len(pdf), secure_url)
        return str(secure_url)
