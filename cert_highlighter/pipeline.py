from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from .extractor import EasyOcrEngine, serialize_words
from .mapper import map_fields_to_highlights
from .models import ExtractionStatus, Highlight, OcrDocument, OcrPage, PipelineResult
from .structurer import FieldExtractionClient

logger = logging.getLogger(__name__)

StageCallback = Callable[[str], None]


def run_field_pipeline(page: OcrPage, client: FieldExtractionClient) -> PipelineResult:
    """Serialize, extract, resolve, group and normalize one OCR page.

    A failed extraction short-circuits to an empty highlight list; its
    reason is kept in ``status``.
    """
    ocr_line_text = serialize_words(page.words)
    extraction = client.extract(ocr_line_text)
    if not extraction.succeeded:
        logger.info("No fields extracted (%s)", extraction.status.value)
        return PipelineResult(status=extraction.status)

    highlights = map_fields_to_highlights(
        extraction.fields,
        page,
        match_tolerance=client.settings.match_tolerance,
        reading_order=client.settings.reading_order,
    )
    logger.info("Built %d highlights from %d OCR words", len(highlights), len(page.words))
    return PipelineResult(status=ExtractionStatus.OK, highlights=highlights)


def extract_highlights(page: OcrPage, client: FieldExtractionClient) -> List[Highlight]:
    return run_field_pipeline(page, client).highlights


def run_ocr_pipeline(
    document: OcrDocument,
    client: FieldExtractionClient,
    on_stage: Optional[StageCallback] = None,
) -> PipelineResult:
    page = document.first_page()
    if len(document.pages) > 1:
        logger.info("Ignoring %d pages after the first", len(document.pages) - 1)
    if on_stage:
        on_stage("llm")
    result = run_field_pipeline(page, client)
    return result.model_copy(update={"ocr": document})


def run_document_pipeline(
    document_path: Path,
    client: FieldExtractionClient,
    ocr_engine: EasyOcrEngine,
    on_stage: Optional[StageCallback] = None,
) -> PipelineResult:
    if on_stage:
        on_stage("ocr")
    document = ocr_engine.read(document_path)
    return run_ocr_pipeline(document, client, on_stage=on_stage)
