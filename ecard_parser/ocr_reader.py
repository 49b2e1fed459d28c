"""
OCR Reader
==========
Loads the JSON written by the OCR service and converts it into the flat
line list and text components the extraction engine works on.

Expected layout (only the first block is read):

    {"Value": {"Read": {"Blocks": [
        {"Lines": [
            {"Text": "Issue Date",
             "BoundingPolygon": [{"X": 10, "Y": 20}, ... 4 points ...]},
            ...
        ]}
    ]}}}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

from pydantic import ValidationError

from .models import OcrDocument, OcrLine

logger = logging.getLogger(__name__)


class OcrFormatError(ValueError):
    """The OCR JSON does not have the structure the reader expects."""


def parse_ocr_payload(payload: Any) -> OcrDocument:
    """
    Convert a decoded OCR JSON object into an OcrDocument.

    Every list-valued property of the first block is treated as a list of
    line objects; lines keep their order within and across those lists.

    Raises:
        OcrFormatError: If the block is missing or a line is malformed.
    """
    try:
        block = payload["Value"]["Read"]["Blocks"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise OcrFormatError(f"Missing Value.Read.Blocks[0]: {e!r}") from e

    if not isinstance(block, dict):
        raise OcrFormatError(
            f"Expected an object for the first block, got {type(block).__name__}"
        )

    lines: list[str] = []
    components = []

    for key, entries in block.items():
        if not isinstance(entries, list):
            continue

        for idx, entry in enumerate(entries):
            try:
                line = OcrLine.model_validate(entry)
                component = line.to_component()
            except ValidationError as e:
                raise OcrFormatError(
                    f"Invalid line {key}[{idx}]: {e.error_count()} error(s), "
                    f"first: {e.errors()[0]['msg']}"
                ) from e
            except (ValueError, OverflowError) as e:
                raise OcrFormatError(f"Invalid line {key}[{idx}]: {e}") from e

            lines.append(line.text)
            components.append(component)

    return OcrDocument(lines=lines, components=components)


def load_ocr_document(path: Union[str, Path]) -> OcrDocument:
    """
    Read and parse an OCR JSON file.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the file is not valid JSON.
        OcrFormatError: If the JSON is not an OCR result.
    """
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    document = parse_ocr_payload(payload)
    logger.debug(f"Loaded {len(document.lines)} OCR lines from {path}")
    return document
