"""
CLI entry-point for the chart import pipeline.

Usage
-----
    python -m tradejournal.services.chart_loader scan report.pdf playbook.pdf
    python -m tradejournal.services.chart_loader upload report.pdf [--url http://localhost:5000/api/assets]
"""

from __future__ import annotations

import argparse
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def _run_import(args: argparse.Namespace):
    from tradejournal.ingestion.pdf_parser import DocumentFile, document_fingerprint
    from tradejournal.ingestion.pipeline import import_charts

    files = [DocumentFile.from_path(p, password=args.password) for p in args.files]

    def on_progress(percent: int) -> None:
        logger.debug("Progress: %d%%", percent)

    assets, batch = import_charts(files, on_progress, target_max_width=args.target_width)

    print("\n══════════════ Import Summary ══════════════")
    print(f"  Status          : {batch.status.value}")
    print(f"  Files processed : {batch.files_processed}")
    print(f"  Files skipped   : {len(batch.files_failed)}")
    print(f"  Pages processed : {batch.pages_processed}")
    print(f"  Pages skipped   : {batch.pages_skipped}")
    print(f"  Charts detected : {len(assets)}")
    print(f"  Elapsed         : {batch.elapsed_seconds:.1f}s")
    print("════════════════════════════════════════════")
    for file in files:
        try:
            digest = document_fingerprint(file)[:12]
        except OSError:
            digest = "unreadable"
        mark = "✗" if file.name in batch.files_failed else "•"
        print(f"  {mark} {digest}  {file.name}")
    return assets


def cmd_scan(args: argparse.Namespace) -> int:
    assets = _run_import(args)
    for a in assets:
        tags = ", ".join(sorted(a.detected_patterns)) or "-"
        print(f"  {a.source_name} p.{a.page_number}  {a.width}x{a.height}  [{tags}]")
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    from tradejournal.ingestion.upload import AssetUploader, commit_assets

    assets = _run_import(args)
    if not assets:
        print("Nothing to upload.")
        return 0

    uploader = AssetUploader(url=args.url)
    try:
        report = commit_assets(assets, uploader)
    finally:
        uploader.close()

    print(f"\nUploaded {len(report.uploaded)} / {len(assets)} charts.")
    for u in report.uploaded:
        print(f"  ✓ {u.source} p.{u.page} → {u.id} {u.url or ''}")
    for f in report.failed:
        print(f"  ✗ {f.source} p.{f.page}: {f.error}")
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Chart import pipeline CLI",
        prog="python -m tradejournal.services.chart_loader",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("files", nargs="+", help="PDF files to import")
    common.add_argument("--target-width", type=int, default=None, help="Stored image width (px)")
    common.add_argument("--password", type=str, default=None, help="Password for encrypted PDFs")

    sub = parser.add_subparsers(dest="command", required=True)

    # scan
    p_scan = sub.add_parser("scan", parents=[common], help="Detect chart pages without uploading")
    p_scan.set_defaults(func=cmd_scan)

    # upload
    p_upload = sub.add_parser("upload", parents=[common], help="Detect chart pages and upload them")
    p_upload.add_argument("--url", type=str, default=None, help="Override the asset endpoint URL")
    p_upload.set_defaults(func=cmd_upload)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
