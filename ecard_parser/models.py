"""
Data Models
===========
Pydantic models for OCR geometry, eCard templates and extraction output.
All output models are serializable to JSON and flatten to CSV rows.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ─── Enums ────────────────────────────────────────────────────────────────────


class SearchDirection(str, Enum):
    """Which side of a label its value is expected on."""
    UP = "up"
    DOWN = "down"


class SkipReason(str, Enum):
    """Why a document produced no extraction result."""
    UNCLASSIFIED = "unclassified"
    SANITY_CHECK_FAILED = "sanity_check_failed"
    MALFORMED_INPUT = "malformed_input"
    READ_ERROR = "read_error"


# ─── Geometry ─────────────────────────────────────────────────────────────────


class Point(BaseModel):
    """Integer pixel coordinate."""
    model_config = ConfigDict(frozen=True)

    x: int
    y: int


class Rectangle(BaseModel):
    """
    Axis-aligned rectangle in image pixels.

    Width and height may be negative for a region computed from two
    components in the wrong order; such a rectangle contains nothing.
    """
    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    width: int
    height: int

    @property
    def left(self) -> int:
        return self.x

    @property
    def top(self) -> int:
        return self.y

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def center(self) -> Point:
        return Point(
            x=self.left + self.width // 2,
            y=self.top + self.height // 2,
        )

    def contains(self, point: Point) -> bool:
        """Inclusive containment test on all four edges."""
        return (
            self.left <= point.x <= self.right
            and self.top <= point.y <= self.bottom
        )


class TextComponent(BaseModel):
    """
    One OCR-recognized text fragment and the envelope of its bounding polygon.

    The OCR service does not guarantee corner ordering, so the rectangle is
    always rebuilt from the min/max of the four corners.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    rect: Rectangle

    @classmethod
    def from_corners(
        cls,
        text: str,
        corners: Sequence[tuple[float, float]],
    ) -> TextComponent:
        """
        Build a component from four (x, y) corner points in any order.

        Raises:
            ValueError: If the polygon does not have exactly four corners.
        """
        if len(corners) != 4:
            raise ValueError(
                f"Bounding polygon must have 4 corners, got {len(corners)}"
            )

        xs = [int(round(x)) for x, _ in corners]
        ys = [int(round(y)) for _, y in corners]
        min_x, min_y = min(xs), min(ys)

        return cls(
            text=text,
            rect=Rectangle(
                x=min_x,
                y=min_y,
                width=max(xs) - min_x,
                height=max(ys) - min_y,
            ),
        )

    def center(self) -> Point:
        """Geometric center of the bounding rectangle."""
        return self.rect.center()


# ─── OCR Input ────────────────────────────────────────────────────────────────


class OcrPoint(BaseModel):
    """One corner of an OCR bounding polygon as emitted by the OCR service."""
    x: float = Field(alias="X", allow_inf_nan=False)
    y: float = Field(alias="Y", allow_inf_nan=False)


class OcrLine(BaseModel):
    """One recognized line in the OCR JSON."""
    text: str = Field(alias="Text")
    bounding_polygon: list[OcrPoint] = Field(
        alias="BoundingPolygon",
        min_length=4,
        max_length=4,
    )

    def to_component(self) -> TextComponent:
        return TextComponent.from_corners(
            self.text,
            [(p.x, p.y) for p in self.bounding_polygon],
        )


class OcrDocument(BaseModel):
    """
    What the extraction engine needs from one OCR result: the recognized
    lines in reading order and a text component per line.
    """
    lines: list[str] = Field(default_factory=list)
    components: list[TextComponent] = Field(default_factory=list)


# ─── Templates ────────────────────────────────────────────────────────────────


class LabelList(BaseModel):
    """
    Labels and tokens needed to pull every field off one eCard layout.
    Always fully populated; a partial template is never produced.
    """
    model_config = ConfigDict(frozen=True)

    template_name: str = Field(min_length=1)
    issue_date: str = Field(min_length=1)
    renew_by: str = Field(min_length=1)
    ecard_code: str = Field(min_length=1)
    name: str = Field(
        min_length=1,
        description="Phrase printed just below the holder's name",
    )
    cert_title_paragraph_begin: str = Field(min_length=1)
    cert_title_paragraph_end: str = Field(min_length=1)
    cert_title_token_begin: str = Field(min_length=1)
    cert_title_token_end: str = Field(min_length=1)


# ─── Extraction Output ───────────────────────────────────────────────────────


# CSV header -> model field, in column order
CSV_COLUMNS: dict[str, str] = {
    "CertTitle": "cert_title",
    "FullName": "full_name",
    "IssueDate": "issue_date",
    "RenewByDate": "renew_by_date",
    "EcardCode": "ecard_code",
    "Filename": "filename",
}


class ExtractionResult(BaseModel):
    """
    One extracted eCard, i.e. one row in the CSV output.
    Missing fields are empty strings so every row serializes the same way.
    """
    cert_title: str = ""
    full_name: str = ""
    issue_date: str = ""
    renew_by_date: str = ""
    ecard_code: str = ""
    filename: str = Field(
        min_length=1,
        description="Source OCR JSON path; doubles as the work queue key",
    )

    def to_row(self) -> list[str]:
        """Field values in CSV column order."""
        return [getattr(self, field) for field in CSV_COLUMNS.values()]


class DocumentOutcome(BaseModel):
    """Result of running the extraction pipeline over one document."""
    source: str
    result: Optional[ExtractionResult] = None
    skip_reason: Optional[SkipReason] = None
    message: str = ""

    @computed_field
    @property
    def succeeded(self) -> bool:
        return self.result is not None


class SkippedDocument(BaseModel):
    """A document the batch could not extract, kept for review."""
    source: str
    reason: SkipReason
    message: str = ""


class BatchReport(BaseModel):
    """Summary of one pass over the work queue."""
    documents_processed: int = 0
    documents_extracted: int = 0
    skipped: list[SkippedDocument] = Field(default_factory=list)
    csv_files: list[str] = Field(default_factory=list)
    rows_written: int = 0
    stopped_early: bool = False

    @computed_field
    @property
    def success_rate(self) -> float:
        if self.documents_processed == 0:
            return 0.0
        return round(
            self.documents_extracted / self.documents_processed * 100,
            2
        )

    @computed_field
    @property
    def skip_breakdown(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for doc in self.skipped:
            counts[doc.reason.value] = counts.get(doc.reason.value, 0) + 1
        return counts
