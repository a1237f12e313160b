"""
Commit step: hand staged chart assets to the journal server.

One multipart POST per asset to ``settings.upload_url``. Submissions are
independent – a rejected asset is recorded in the ``CommitReport`` and the
loop carries on with the rest.
"""

from __future__ import annotations

import logging
from typing import Iterable

import requests
from pydantic import ValidationError

from tradejournal.config import settings
from tradejournal.ingestion.errors import UploadSubmissionError
from tradejournal.ingestion.schemas import (
    CommitReport,
    DetectedAsset,
    FailedUpload,
    UploadedAsset,
    asset_to_form_fields,
)

logger = logging.getLogger(__name__)


class AssetUploader:
    """Multipart client for the journal's asset endpoint."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url or settings.upload_url
        self.timeout = timeout or settings.upload_timeout
        self._session = session or requests.Session()

    def build_form(self, asset: DetectedAsset) -> tuple[dict[str, str], dict[str, tuple]]:
        """Return ``(data, files)`` for ``requests``' multipart encoder."""
        files = {"file": ("chart.jpg", asset.image.image_buffer, asset.image.mime_type)}
        return asset_to_form_fields(asset), files

    def submit(self, asset: DetectedAsset) -> UploadedAsset:
        """POST one asset; raises ``UploadSubmissionError`` on any failure."""
        data, files = self.build_form(asset)
        try:
            response = self._session.post(self.url, data=data, files=files, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UploadSubmissionError(f"{asset}: request failed: {exc}") from exc

        if not response.ok:
            raise UploadSubmissionError(
                f"{asset}: server returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UploadSubmissionError(
                f"{asset}: response is not JSON", status_code=response.status_code
            ) from exc

        asset_id = body.get("id") if isinstance(body, dict) else None
        if asset_id is None:
            raise UploadSubmissionError(
                f"{asset}: response carries no asset id", status_code=response.status_code
            )

        try:
            return UploadedAsset(
                id=str(asset_id),
                url=body.get("url"),
                source=asset.source_name,
                page=asset.page_number,
            )
        except ValidationError as exc:
            raise UploadSubmissionError(
                f"{asset}: malformed response: {exc.errors()[0]['msg']}",
                status_code=response.status_code,
            ) from exc

    def commit(self, assets: Iterable[DetectedAsset]) -> CommitReport:
        """Submit every asset; failures are collected, never raised."""
        report = CommitReport()
        for asset in assets:
            try:
                uploaded = self.submit(asset)
            except UploadSubmissionError as exc:
                logger.warning("Upload failed for %s: %s", asset, exc)
                report.failed.append(
                    FailedUpload(
                        source=asset.source_name,
                        page=asset.page_number,
                        error=str(exc),
                        status_code=exc.status_code,
                    )
                )
                continue
            logger.debug("Uploaded %s as %s.", asset, uploaded.id)
            report.uploaded.append(uploaded)

        logger.info(
            "Commit complete: %d uploaded, %d failed.", len(report.uploaded), len(report.failed)
        )
        return report

    def close(self) -> None:
        self._session.close()


def commit_assets(
    assets: Iterable[DetectedAsset],
    uploader: AssetUploader | None = None,
) -> CommitReport:
    """Commit *assets* with *uploader* (a fresh default one if omitted)."""
    if uploader is not None:
        return uploader.commit(assets)
    uploader = AssetUploader()
    try:
        return uploader.commit(assets)
    finally:
        uploader.close()
