"""
Chart import pipeline for trading PDFs (playbooks, journals, broker reports).

Modules
-------
config       – Pipeline-specific settings (render ceiling, JPEG quality, keyword sets …)
errors       – Exception taxonomy (file-, page-, upload- and run-level)
schemas      – Pydantic models for RasterResult, DetectedAsset, CommitReport
pdf_parser   – PDF opening & per-page text extraction (PyMuPDF)
rasterizer   – Page rendering, resampling and JPEG encoding (PyMuPDF + Pillow)
charts       – Chart-page classification heuristic
patterns     – Trading-pattern tagging (M, W, Half Batman, EMA context …)
pipeline     – Batch orchestrator with progress, skips and cancellation
upload       – Commit step: multipart submission to the journal server
"""
