from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file from the project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

GROQ_ENDPOINT = "https://api.groq.com/openai/v1/chat/completions"
MODEL_NAME = "openai/gpt-oss-120b"  # Supports strict json_schema responses on Groq
DEFAULT_UPLOAD_DIR = Path(__file__).resolve().parent / "uploads"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


class Settings(BaseModel):
    api_key: Optional[str] = None
    endpoint: str = GROQ_ENDPOINT
    model: str = MODEL_NAME
    timeout: float = Field(default=120.0, gt=0)
    temperature: float = 0.1
    match_tolerance: float = Field(default=0.0, ge=0)
    reading_order: bool = False
    ocr_languages: List[str] = Field(default_factory=lambda: ["en"])
    ocr_gpu: bool = False
    upload_dir: Path = DEFAULT_UPLOAD_DIR
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        languages = [
            lang.strip()
            for lang in os.getenv("OCR_LANGUAGES", "en").split(",")
            if lang.strip()
        ]
        return cls(
            api_key=os.getenv("GROQ_API_KEY") or None,
            endpoint=os.getenv("EXTRACTION_ENDPOINT", GROQ_ENDPOINT),
            model=os.getenv("EXTRACTION_MODEL", MODEL_NAME),
            timeout=_env_float("EXTRACTION_TIMEOUT", 120.0),
            temperature=_env_float("EXTRACTION_TEMPERATURE", 0.1),
            match_tolerance=_env_float("MATCH_TOLERANCE", 0.0),
            reading_order=_env_flag("READING_ORDER"),
            ocr_languages=languages or ["en"],
            ocr_gpu=_env_flag("OCR_GPU"),
            upload_dir=Path(os.getenv("UPLOAD_DIR") or DEFAULT_UPLOAD_DIR),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
