"""Text extraction front-end: plain text read directly, rich formats via Docling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PLAIN_TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".csv"}


@dataclass(frozen=True)
class LoadedFile:
    """Raw extracted text plus the file facts the preprocessor needs."""

    text: str
    file_name: str
    file_type: str
    file_size: int


def load_file(file_path: str, use_gpu: bool = False) -> LoadedFile:
    """Extract text from a document file.

    Plain-text formats are read as UTF-8. PDF, DOCX, PPTX, XLSX and HTML are
    converted to markdown with Docling.

    Args:
        file_path: Path to the document file.
        use_gpu: If True, use GPU acceleration for the Docling PDF pipeline.
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    suffix = path.suffix.lower()
    file_type = suffix.lstrip(".") or "text"
    file_size = path.stat().st_size

    if suffix in PLAIN_TEXT_SUFFIXES:
        logger.info("Loading %s file: %s", file_type, file_path)
        text = path.read_text(encoding="utf-8")
    else:
        text = _convert_with_docling(file_path, suffix, use_gpu)

    logger.info("Loaded %d characters from %s", len(text), file_path)
    return LoadedFile(
        text=text, file_name=path.name, file_type=file_type, file_size=file_size
    )


def _convert_with_docling(file_path: str, suffix: str, use_gpu: bool) -> str:
    from docling.document_converter import DocumentConverter

    converter_kwargs: dict = {}

    if use_gpu and suffix == ".pdf":
        try:
            from docling.datamodel.accelerator_options import (
                AcceleratorDevice,
                AcceleratorOptions,
            )
            from docling.datamodel.pipeline_options import PdfPipelineOptions
            from docling.document_converter import PdfFormatOption

            accel = AcceleratorOptions(device=AcceleratorDevice.AUTO)
            pdf_opts = PdfPipelineOptions(accelerator_options=accel)
            converter_kwargs["format_options"] = {
                "pdf": PdfFormatOption(pipeline_options=pdf_opts),
            }
            logger.info("GPU acceleration enabled for PDF")
        except ImportError:
            logger.warning("GPU acceleration imports failed, falling back to CPU")

    logger.info("Converting document via Docling: %s", file_path)
    converter = DocumentConverter(**converter_kwargs)
    result = converter.convert(file_path)
    return result.document.export_to_markdown()
