from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator

Number = Union[StrictInt, StrictFloat]


class FieldCategory(str, Enum):
    NAME = "name"
    DATE_OF_BIRTH = "dateOfBirth"
    ADDRESS = "address"
    CAUSE_OF_DEATH = "causeOfDeath"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    FieldCategory.NAME: "Name",
    FieldCategory.DATE_OF_BIRTH: "Date of Birth",
    FieldCategory.ADDRESS: "Address",
    FieldCategory.CAUSE_OF_DEATH: "Cause of Death",
}


class OcrWord(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    polygon: Tuple[float, float, float, float, float, float, float, float]

    @property
    def top_left(self) -> Tuple[float, float]:
        return self.polygon[0], self.polygon[1]

    @property
    def xs(self) -> Tuple[float, ...]:
        return self.polygon[0::2]

    @property
    def ys(self) -> Tuple[float, ...]:
        return self.polygon[1::2]


class OcrPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = Field(gt=0)
    height: float = Field(gt=0)
    words: List[OcrWord] = Field(default_factory=list)


class OcrDocument(BaseModel):
    pages: List[OcrPage] = Field(default_factory=list)

    def first_page(self) -> OcrPage:
        if not self.pages:
            raise ValueError("OCR result contains no pages")
        return self.pages[0]


class FieldMention(BaseModel):
    word: StrictStr
    coordinate: Tuple[Number, Number]
    groupId: StrictInt

    @field_validator("groupId", mode="before")
    @classmethod
    def _integral_group_id(cls, value):
        # JSON Schema "integer" admits 1.0
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class ParsedFields(BaseModel):
    """Validated response of the extraction model, one list per category."""

    name: List[FieldMention]
    dateOfBirth: List[FieldMention]
    address: List[FieldMention]
    causeOfDeath: List[FieldMention]

    def mentions(self, category: FieldCategory) -> List[FieldMention]:
        return getattr(self, category.value)

    def is_empty(self) -> bool:
        return not any(self.mentions(category) for category in FieldCategory)


class ExtractionStatus(str, Enum):
    OK = "ok"
    EMPTY_RESPONSE = "empty_response"
    INVALID_JSON = "invalid_json"
    SCHEMA_MISMATCH = "schema_mismatch"
    REQUEST_FAILED = "request_failed"
    NOT_CONFIGURED = "not_configured"


class FieldExtraction(BaseModel):
    status: ExtractionStatus
    fields: Optional[ParsedFields] = None
    raw_text: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExtractionStatus.OK and self.fields is not None


class PixelBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_x: float
    min_y: float
    max_x: float
    max_y: float


class HighlightGroup(BaseModel):
    category: FieldCategory
    group_id: int
    words: List[OcrWord] = Field(default_factory=list)
    tokens: List[str] = Field(default_factory=list)

    @property
    def highlight_id(self) -> str:
        return f"h-{self.category.value}-g-{self.group_id}"

    @property
    def text(self) -> str:
        return f"{self.category.label}: {' '.join(self.tokens)}"


class Highlight(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    x: float
    y: float
    width: float
    height: float


class PipelineResult(BaseModel):
    status: ExtractionStatus
    highlights: List[Highlight] = Field(default_factory=list)
    ocr: Optional[OcrDocument] = None


class ExtractionArtifacts(BaseModel):
    source_path: Path
    ocr_json_path: Path
    highlights_json_path: Path


class HighlightResponse(BaseModel):
    file_name: Optional[str] = None
    status: ExtractionStatus
    highlights: List[Highlight]
