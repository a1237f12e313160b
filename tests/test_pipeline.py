"""
Tests for the import orchestrator, the commit step and the CLI.

Run: python -m pytest tests/ -v
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

CHART_A = "EURUSD H4 chart RSI 45 London session"
CHART_B = "half batman setup confirmed, ema 50 reclaim"
CHART_C = "W pattern forming, 13 ema support holding"
PROSE = "Chapter 3: Trading psychology and discipline"


def _make_pdf(pages: list[tuple[str, float, float]]) -> bytes:
    import fitz

    doc = fitz.open()
    for text, width, height in pages:
        page = doc.new_page(width=width, height=height)
        if text:
            page.insert_text((36, 72), text, fontsize=12)
    data = doc.tobytes()
    doc.close()
    return data


def _pdf_file(name: str, pages: list[tuple[str, float, float]]):
    from tradejournal.ingestion.pdf_parser import DocumentFile

    return DocumentFile.from_bytes(name, _make_pdf(pages))


def _asset(name: str = "a.pdf", page_index: int = 0, patterns=()):
    from tradejournal.ingestion.schemas import DetectedAsset, RasterResult

    return DetectedAsset(
        source_name=name,
        page_index=page_index,
        image=RasterResult(image_buffer=b"\xff\xd8jpeg", width=1280, height=720),
        extracted_text=CHART_C,
        detected_patterns=set(patterns),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Orchestrator tests
# ═══════════════════════════════════════════════════════════════════════════

class TestChartImporter:
    def test_single_chart_page(self):
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        progress: list[int] = []
        importer = ChartImporter()
        assets = importer.run([_pdf_file("eurusd.pdf", [(CHART_A, 700, 450)])], progress.append)

        assert len(assets) == 1
        asset = assets[0]
        assert asset.source_name == "eurusd.pdf"
        assert asset.page_index == 0
        assert asset.detected_patterns == frozenset()
        assert "London session" in asset.extracted_text
        assert (asset.width, asset.height) == (1280, 823)
        assert progress == [100]
        assert importer.status is ImportStatus.COMPLETED

    def test_portrait_page_not_staged(self):
        from tradejournal.ingestion.pipeline import ChartImporter

        importer = ChartImporter()
        assets = importer.run([_pdf_file("b.pdf", [(CHART_B, 500, 600)])])
        assert assets == ()
        assert importer.batch.pages_processed == 1

    def test_tags_staged_asset(self):
        from tradejournal.ingestion.pipeline import ChartImporter

        assets = ChartImporter().run([_pdf_file("c.pdf", [(CHART_C, 800, 450)])])
        assert len(assets) == 1
        assert assets[0].detected_patterns == {"W", "EMA Context"}
        assert (assets[0].width, assets[0].height) == (1280, 720)

    def test_mixed_pages_keep_file_then_page_order(self):
        from tradejournal.ingestion.pipeline import ChartImporter

        files = [
            _pdf_file("one.pdf", [(CHART_A, 700, 450), (PROSE, 700, 450), (CHART_C, 700, 450)]),
            _pdf_file("two.pdf", [(PROSE, 612, 792), (CHART_A, 700, 450)]),
        ]
        importer = ChartImporter()
        assets = importer.run(files)

        assert [(a.source_name, a.page_index) for a in assets] == [
            ("one.pdf", 0),
            ("one.pdf", 2),
            ("two.pdf", 1),
        ]
        assert len(assets) <= importer.batch.pages_total == 5

    def test_raster_error_skips_only_that_page(self):
        from tradejournal.ingestion.errors import RasterError
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.rasterizer import render_page
        from tradejournal.ingestion.schemas import ImportStatus

        def flaky_render(doc, index, target_max_width=None):
            if index == 1:
                raise RasterError("malformed content stream")
            return render_page(doc, index, target_max_width)

        progress: list[int] = []
        importer = ChartImporter()
        with patch("tradejournal.ingestion.pipeline.render_page", side_effect=flaky_render):
            assets = importer.run(
                [_pdf_file("three.pdf", [(CHART_A, 700, 450)] * 3)], progress.append
            )

        assert [a.page_index for a in assets] == [0, 2]
        assert progress == [33, 67, 100]
        assert importer.batch.pages_skipped == 1
        assert importer.status is ImportStatus.COMPLETED

    def test_page_read_error_skips_only_that_page(self):
        from tradejournal.ingestion.errors import PageReadError
        from tradejournal.ingestion.pdf_parser import SourceDocument
        from tradejournal.ingestion.pipeline import ChartImporter

        real_read = SourceDocument.read_page

        def flaky_read(self, index):
            if index == 0:
                raise PageReadError("corrupted page")
            return real_read(self, index)

        progress: list[int] = []
        with patch.object(SourceDocument, "read_page", flaky_read):
            assets = ChartImporter().run(
                [_pdf_file("two.pdf", [(CHART_A, 700, 450)] * 2)], progress.append
            )

        assert [a.page_index for a in assets] == [1]
        assert progress == [50, 100]

    def test_unreadable_file_is_skipped(self):
        from tradejournal.ingestion.pdf_parser import DocumentFile
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        progress: list[int] = []
        importer = ChartImporter()
        assets = importer.run(
            [
                DocumentFile.from_bytes("junk.pdf", b"definitely not a pdf"),
                _pdf_file("good.pdf", [(CHART_A, 700, 450), (PROSE, 700, 450)]),
            ],
            progress.append,
        )

        assert len(assets) == 1
        assert progress == [50, 100]  # nothing reported for junk.pdf
        assert importer.batch.files_failed == ["junk.pdf"]
        assert importer.batch.files_processed == 1
        assert importer.status is ImportStatus.COMPLETED

    def test_progress_monotonic_per_file(self):
        from tradejournal.ingestion.pipeline import ChartImporter

        progress: list[int] = []
        ChartImporter().run([_pdf_file("seven.pdf", [(PROSE, 700, 450)] * 7)], progress.append)

        assert len(progress) == 7
        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert all(0 <= p <= 100 for p in progress)

    def test_cancel_after_first_page(self):
        from tradejournal.ingestion import pipeline
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        importer = ChartImporter()
        files = [
            _pdf_file("first.pdf", [(CHART_A, 700, 450), (CHART_A, 700, 450)]),
            _pdf_file("second.pdf", [(CHART_A, 700, 450)]),
        ]

        def on_progress(percent: int) -> None:
            importer.cancel()

        with patch.object(pipeline, "open_document", wraps=pipeline.open_document) as opened:
            assets = importer.run(files, on_progress)

        assert len(assets) <= 1
        assert all(a.source_name == "first.pdf" and a.page_index == 0 for a in assets)
        assert importer.status is ImportStatus.CANCELLED
        assert opened.call_count == 1  # second.pdf never opened
        assert importer.batch.pages_processed == 1

    def test_cancel_on_last_page_still_completes(self):
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        importer = ChartImporter()

        def on_progress(percent: int) -> None:
            if percent == 100:
                importer.cancel()

        assets = importer.run(
            [_pdf_file("only.pdf", [(CHART_A, 700, 450), (CHART_C, 700, 450)])], on_progress
        )

        assert [a.page_index for a in assets] == [0, 1]
        assert importer.batch.pages_processed == importer.batch.pages_total == 2
        assert importer.status is ImportStatus.COMPLETED

    def test_expired_deadline_cancels(self):
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        importer = ChartImporter()
        assets = importer.run([_pdf_file("a.pdf", [(CHART_A, 700, 450)])], timeout=0)
        assert assets == ()
        assert importer.status is ImportStatus.CANCELLED

    def test_out_of_memory_aborts_run(self):
        from tradejournal.ingestion.errors import ImportRunError
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        importer = ChartImporter()
        with patch("tradejournal.ingestion.pipeline.render_page", side_effect=MemoryError):
            with pytest.raises(ImportRunError):
                importer.run([_pdf_file("a.pdf", [(CHART_A, 700, 450)])])
        assert importer.status is ImportStatus.FAILED

    def test_progress_callback_error_propagates(self):
        from tradejournal.ingestion.pipeline import ChartImporter
        from tradejournal.ingestion.schemas import ImportStatus

        def broken(percent: int) -> None:
            raise KeyError("ui gone")

        importer = ChartImporter()
        with pytest.raises(KeyError):
            importer.run([_pdf_file("a.pdf", [(CHART_A, 700, 450)])], broken)
        assert importer.status is ImportStatus.FAILED

    def test_importer_is_single_use(self):
        from tradejournal.ingestion.pipeline import ChartImporter

        importer = ChartImporter()
        importer.run([])
        with pytest.raises(RuntimeError):
            importer.run([])

    def test_import_charts_helper(self, tmp_path):
        from tradejournal.ingestion.pipeline import import_charts
        from tradejournal.ingestion.schemas import ImportStatus

        path = tmp_path / "journal.pdf"
        path.write_bytes(_make_pdf([(CHART_C, 800, 450)]))
        assets, batch = import_charts([path], target_max_width=640)

        assert len(assets) == 1
        assert assets[0].source_name == "journal.pdf"
        assert (assets[0].width, assets[0].height) == (640, 360)
        assert batch.status is ImportStatus.COMPLETED


# ═══════════════════════════════════════════════════════════════════════════
# Upload tests
# ═══════════════════════════════════════════════════════════════════════════

def _response(status: int, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = json.dumps(body) if body is not None else "error"
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class TestUpload:
    def test_submit_builds_multipart_form(self):
        from tradejournal.ingestion.upload import AssetUploader

        session = MagicMock()
        session.post.return_value = _response(201, {"id": "42", "url": "/uploads/assets/42.jpg"})
        uploader = AssetUploader(url="http://journal.test/api/assets", timeout=5, session=session)

        uploaded = uploader.submit(_asset("setups.pdf", 3, {"W", "EMA Context"}))

        assert uploaded.id == "42"
        assert uploaded.url == "/uploads/assets/42.jpg"
        assert (uploaded.source, uploaded.page) == ("setups.pdf", 4)

        args, kwargs = session.post.call_args
        assert args[0] == "http://journal.test/api/assets"
        assert kwargs["timeout"] == 5
        data, files = kwargs["data"], kwargs["files"]
        assert data["source"] == "setups.pdf"
        assert data["page"] == "4"
        assert data["isChart"] == "true"
        assert data["detectedPatterns"] == json.dumps(["EMA Context", "W"])
        assert files["file"] == ("chart.jpg", b"\xff\xd8jpeg", "image/jpeg")

    def test_submit_rejects_error_status(self):
        from tradejournal.ingestion.errors import UploadSubmissionError
        from tradejournal.ingestion.upload import AssetUploader

        session = MagicMock()
        session.post.return_value = _response(500)
        uploader = AssetUploader(url="http://journal.test/api/assets", session=session)

        with pytest.raises(UploadSubmissionError) as exc_info:
            uploader.submit(_asset())
        assert exc_info.value.status_code == 500

    def test_submit_requires_id(self):
        from tradejournal.ingestion.errors import UploadSubmissionError
        from tradejournal.ingestion.upload import AssetUploader

        session = MagicMock()
        session.post.return_value = _response(201, {"url": "/x.jpg"})
        uploader = AssetUploader(url="http://journal.test/api/assets", session=session)

        with pytest.raises(UploadSubmissionError):
            uploader.submit(_asset())

    def test_commit_continues_after_failures(self):
        import requests

        from tradejournal.ingestion.upload import AssetUploader, commit_assets

        session = MagicMock()
        session.post.side_effect = [
            _response(201, {"id": "1"}),
            requests.ConnectionError("server down"),
            _response(413),
            _response(201, {"id": "4", "url": "/u/4.jpg"}),
        ]
        uploader = AssetUploader(url="http://journal.test/api/assets", session=session)
        assets = [_asset("a.pdf", i) for i in range(4)]

        report = commit_assets(assets, uploader)

        assert session.post.call_count == 4
        assert [u.id for u in report.uploaded] == ["1", "4"]
        assert [(f.page, f.status_code) for f in report.failed] == [(2, None), (3, 413)]
        assert not report.ok

    def test_commit_continues_after_malformed_success_body(self):
        from tradejournal.ingestion.upload import AssetUploader

        session = MagicMock()
        session.post.side_effect = [
            _response(201, {"id": "1", "url": 5}),
            _response(201, {"id": "2"}),
        ]
        uploader = AssetUploader(url="http://journal.test/api/assets", session=session)

        report = uploader.commit([_asset("a.pdf", 0), _asset("a.pdf", 1)])

        assert session.post.call_count == 2
        assert [u.id for u in report.uploaded] == ["2"]
        assert len(report.failed) == 1
        assert report.failed[0].page == 1
        assert report.failed[0].status_code == 201
        assert "malformed response" in report.failed[0].error

    def test_commit_nothing(self):
        from tradejournal.ingestion.upload import AssetUploader

        session = MagicMock()
        report = AssetUploader(url="http://journal.test", session=session).commit([])
        assert report.ok
        session.post.assert_not_called()

    def test_default_settings(self):
        from tradejournal.config import settings
        from tradejournal.ingestion.upload import AssetUploader

        uploader = AssetUploader(session=MagicMock())
        assert uploader.url == settings.upload_url
        assert uploader.timeout == settings.upload_timeout


# ═══════════════════════════════════════════════════════════════════════════
# CLI tests
# ═══════════════════════════════════════════════════════════════════════════

class TestCli:
    def test_scan(self, tmp_path, capsys):
        from tradejournal.services.chart_loader import main

        import hashlib

        data = _make_pdf([(CHART_C, 800, 450), (PROSE, 800, 450)])
        path = tmp_path / "setups.pdf"
        path.write_bytes(data)
        missing = tmp_path / "missing.pdf"

        assert main(["scan", str(path), str(missing)]) == 0
        out = capsys.readouterr().out
        assert "Charts detected : 1" in out
        assert f"• {hashlib.sha256(data).hexdigest()[:12]}  setups.pdf" in out
        assert "✗ unreadable  missing.pdf" in out
        assert "setups.pdf p.1" in out
        assert "EMA Context, W" in out

    def test_upload_reports_failures(self, tmp_path, capsys):
        from tradejournal.ingestion.errors import UploadSubmissionError
        from tradejournal.services.chart_loader import main

        path = tmp_path / "setups.pdf"
        path.write_bytes(_make_pdf([(CHART_C, 800, 450)]))

        with patch(
            "tradejournal.ingestion.upload.AssetUploader.submit",
            side_effect=UploadSubmissionError("rejected", status_code=400),
        ):
            code = main(["upload", str(path), "--url", "http://journal.test/api/assets"])

        assert code == 1
        assert "Uploaded 0 / 1 charts." in capsys.readouterr().out
