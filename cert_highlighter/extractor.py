from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import easyocr
import fitz  # PyMuPDF
import numpy as np
from pydantic import ValidationError

from .models import ExtractionArtifacts, Highlight, OcrDocument, OcrPage, OcrWord

logger = logging.getLogger(__name__)

_EASY_OCR_READERS: Dict[tuple, easyocr.Reader] = {}
_EASY_OCR_LOCK = threading.Lock()


class OcrError(RuntimeError):
    """Raised when an OCR result cannot be produced or read."""


def _get_easyocr_reader(languages: Sequence[str], gpu: bool) -> easyocr.Reader:
    key = (tuple(languages), gpu)
    with _EASY_OCR_LOCK:
        if key not in _EASY_OCR_READERS:
            logger.info("Initializing EasyOCR reader (languages=%s, gpu=%s)", list(languages), gpu)
            _EASY_OCR_READERS[key] = easyocr.Reader(list(languages), gpu=gpu)
        return _EASY_OCR_READERS[key]


class EasyOcrEngine:
    """Word-level OCR for the first page of an image or PDF file."""

    def __init__(self, languages: Sequence[str] = ("en",), gpu: bool = False):
        self.languages = list(languages)
        self.gpu = gpu

    def read(self, document_path: Path) -> OcrDocument:
        if not document_path.exists():
            raise FileNotFoundError(document_path)

        try:
            doc = fitz.open(str(document_path))
        except Exception as exc:
            raise OcrError(f"Unable to open {document_path.name}: {exc}") from exc

        try:
            if doc.page_count == 0:
                raise OcrError(f"{document_path.name} has no pages")
            page = doc.load_page(0)
            pix = page.get_pixmap(matrix=fitz.Matrix(1, 1))
            array = np.frombuffer(pix.samples, dtype=np.uint8)
            array = array.reshape(pix.height, pix.width, pix.n)
            if pix.n == 4:
                array = array[:, :, :3]
        except OcrError:
            raise
        except Exception as exc:
            raise OcrError(f"Unable to render {document_path.name}: {exc}") from exc
        finally:
            doc.close()

        reader = _get_easyocr_reader(self.languages, self.gpu)
        ocr_results = reader.readtext(array, detail=1)
        words = [
            word
            for word in (_easyocr_to_word(bbox, text) for bbox, text, _confidence in ocr_results)
            if word is not None
        ]
        logger.info("EasyOCR found %d words on %s", len(words), document_path.name)
        return OcrDocument(
            pages=[OcrPage(width=float(pix.width), height=float(pix.height), words=words)]
        )


def _easyocr_to_word(bbox: Sequence[Sequence[float]], text: str) -> Optional[OcrWord]:
    sanitized = (text or "").strip()
    if not sanitized:
        return None
    # EasyOCR corners run top-left, top-right, bottom-right, bottom-left.
    polygon = [float(coord) for point in bbox[:4] for coord in point[:2]]
    return OcrWord(content=sanitized, polygon=polygon)


def load_azure_layout(payload: Union[Dict[str, Any], str, Path]) -> OcrDocument:
    """Read an Azure Document Intelligence style ``analyzeResult``.

    Accepts the decoded dict, a JSON string, or a path to a JSON file. Only
    ``width``, ``height`` and ``words[].content``/``words[].polygon`` of each
    page are used.
    """
    if isinstance(payload, Path):
        payload = payload.read_text(encoding="utf-8")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, RecursionError) as exc:
            raise OcrError(f"OCR result is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise OcrError("OCR result must be a JSON object")

    result = payload.get("analyzeResult", payload)
    pages = result.get("pages") or []
    if not pages:
        raise OcrError("OCR result contains no pages")

    try:
        return OcrDocument(
            pages=[
                OcrPage(
                    width=page.get("width"),
                    height=page.get("height"),
                    words=[
                        OcrWord(content=word.get("content", ""), polygon=word.get("polygon"))
                        for word in page.get("words") or []
                    ],
                )
                for page in pages
            ]
        )
    except ValidationError as exc:
        raise OcrError(f"OCR result has an unexpected shape: {exc}") from exc


def format_coordinate(value: float) -> str:
    """Render a pixel coordinate the way it is echoed back by the model."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def serialize_words(words: Sequence[OcrWord]) -> str:
    """One ``content:x, y`` line per word, top-left corner, input order."""
    lines: List[str] = []
    for word in words:
        x, y = word.top_left
        lines.append(f"{word.content}:{format_coordinate(x)}, {format_coordinate(y)}")
    return "\n".join(lines)


def persist_artifacts(
    *,
    source_path: Path,
    ocr: OcrDocument,
    highlights: Sequence[Highlight],
) -> ExtractionArtifacts:
    """Write the OCR result and the highlights next to the uploaded file."""
    timestamp = int(time.time())
    base_name = source_path.stem
    parent = source_path.parent

    ocr_path = parent / f"{base_name}_{timestamp}_ocr.json"
    highlights_path = parent / f"{base_name}_{timestamp}_highlights.json"

    ocr_path.write_text(ocr.model_dump_json(indent=2), encoding="utf-8")
    highlights_path.write_text(
        json.dumps([item.model_dump() for item in highlights], ensure_ascii=True, indent=2),
        encoding="utf-8",
    )

    return ExtractionArtifacts(
        source_path=source_path,
        ocr_json_path=ocr_path,
        highlights_json_path=highlights_path,
    )
