from __future__ import annotations

import logging
import shutil
import time
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict

from fastapi import Body, Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from .config import Settings
from .extractor import EasyOcrEngine, OcrError, load_azure_layout, persist_artifacts
from .models import HighlightResponse
from .pipeline import run_document_pipeline, run_ocr_pipeline
from .structurer import FieldExtractionClient

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = {
    "application/pdf",
    "application/octet-stream",
    "image/png",
    "image/jpeg",
    "image/tiff",
    "image/bmp",
}


@lru_cache
def get_settings() -> Settings:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    return settings


@lru_cache
def get_client() -> FieldExtractionClient:
    return FieldExtractionClient(get_settings())


@lru_cache
def get_ocr_engine() -> EasyOcrEngine:
    settings = get_settings()
    return EasyOcrEngine(languages=settings.ocr_languages, gpu=settings.ocr_gpu)


app = FastAPI(title="Certificate Field Highlighter API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "Certificate Field Highlighter API", "status": "running"}


@app.post("/api/highlights", response_model=HighlightResponse)
def upload_document(
    file: Annotated[UploadFile, File(...)],
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[FieldExtractionClient, Depends(get_client)],
    ocr_engine: Annotated[EasyOcrEngine, Depends(get_ocr_engine)],
):
    if file.content_type not in SUPPORTED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Only images and PDF files are supported")

    timestamp = int(time.time())
    sanitized_name = file.filename or "document.png"
    target_name = f"{timestamp}_{Path(sanitized_name).name}"
    target_path = settings.upload_dir / target_name

    with target_path.open("wb") as buffer:
        shutil.copyfileobj(file.file, buffer)

    def log_stage(stage: str) -> None:
        logger.info("Processing %s: %s stage", target_name, stage)

    try:
        result = run_document_pipeline(target_path, client, ocr_engine, on_stage=log_stage)
    except OcrError as exc:
        logger.error("OCR failed for %s: %s", target_name, exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    persist_artifacts(source_path=target_path, ocr=result.ocr, highlights=result.highlights)

    return HighlightResponse(
        file_name=target_name,
        status=result.status,
        highlights=result.highlights,
    )


@app.post("/api/highlights/ocr", response_model=HighlightResponse)
def highlight_ocr_result(
    payload: Annotated[Dict[str, Any], Body(...)],
    client: Annotated[FieldExtractionClient, Depends(get_client)],
):
    try:
        document = load_azure_layout(payload)
    except OcrError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    result = run_ocr_pipeline(document, client)
    return HighlightResponse(status=result.status, highlights=result.highlights)


@app.get("/api/file/{name}")
async def get_file(name: str, settings: Annotated[Settings, Depends(get_settings)]):
    safe_name = Path(name).name
    file_path = settings.upload_dir / safe_name
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path=file_path)
