"""
Extraction Engine
=================
Main orchestrator that combines template classification, the sanity check,
label resolution and paragraph extraction into one result per eCard.

Usage:
    engine = ExtractionEngine(config)
    outcome = engine.process_file("path/to/ecard.json")
    # outcome.result is an ExtractionResult, or None with outcome.skip_reason

Architecture:
    OCR JSON → OcrDocument → classify → sanity_check →
    find_value (scalar fields) + extract_title → ExtractionResult
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .models import (
    DocumentOutcome,
    ExtractionResult,
    LabelList,
    SearchDirection,
    SkipReason,
    TextComponent,
)
from .ocr_reader import OcrFormatError, load_ocr_document
from .paragraph import extract_title
from .resolver import find_value
from .templates import classify, sanity_check

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILENAME = "log_csv.txt"


@dataclass
class ExtractorConfig:
    """Configuration for the extraction engine and batch processor."""

    # Work queue
    db_path: str = "ecards.sqlite"

    # Folders
    json_dir: str = ""
    csv_dir: str = "."
    log_dir: str = ""

    # Processing
    batch_size: int = 1000

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.log_file is None and self.log_dir:
            self.log_file = str(Path(self.log_dir) / DEFAULT_LOG_FILENAME)

    @classmethod
    def from_env(cls, **overrides) -> ExtractorConfig:
        """
        Build a config from ECARD_* environment variables.
        Keyword overrides that are not None win over the environment.
        """
        values = {}
        env_map = {
            "db_path": "ECARD_DB_PATH",
            "json_dir": "ECARD_JSON_DIR",
            "csv_dir": "ECARD_CSV_DIR",
            "log_dir": "ECARD_LOG_DIR",
            "log_level": "ECARD_LOG_LEVEL",
        }
        for field_name, env_var in env_map.items():
            if env_var in os.environ:
                values[field_name] = os.environ[env_var]

        batch_size = os.environ.get("ECARD_CSV_BATCH_SIZE")
        if batch_size:
            try:
                values["batch_size"] = int(batch_size)
            except ValueError:
                raise ValueError(
                    f"ECARD_CSV_BATCH_SIZE must be an integer, got {batch_size!r}"
                ) from None

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def setup_logging(config: ExtractorConfig):
    """Configure the ecard_parser logger hierarchy from config."""
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    package_logger = logging.getLogger("ecard_parser")
    package_logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Console handler
    if not any(
        type(h) is logging.StreamHandler for h in package_logger.handlers
    ):
        console = logging.StreamHandler()
        console.setLevel(log_level)
        console.setFormatter(formatter)
        package_logger.addHandler(console)

    # File handler
    if config.log_file:
        log_path = Path(config.log_file).absolute()
        already_attached = any(
            isinstance(h, logging.FileHandler)
            and Path(h.baseFilename) == log_path
            for h in package_logger.handlers
        )
        if not already_attached:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)


class ExtractionEngine:
    """
    Per-document extraction pipeline.

    Orchestrates:
        1. Template classification
        2. Sanity check of the classified labels
        3. Nearest-value resolution for the scalar fields
        4. Certificate title paragraph extraction

    Holds no state besides its config, so one engine can process any number
    of documents, from any number of threads.
    """

    def __init__(
        self,
        config: Optional[ExtractorConfig] = None,
        configure_logging: bool = True,
    ):
        self.config = config or ExtractorConfig()
        if configure_logging:
            setup_logging(self.config)

    def extract(
        self,
        lines: Sequence[str],
        components: Sequence[TextComponent],
        source: str,
    ) -> DocumentOutcome:
        """
        Extract one document's fields.

        Args:
            lines: Recognized lines in reading order.
            components: Text components built from the same OCR result.
            source: Source file identifier stored on the result.

        Returns:
            DocumentOutcome with either a result or a skip reason.
            Never raises for bad input.
        """
        try:
            labels = classify(lines)
            if labels is None:
                return self._skip(
                    source,
                    SkipReason.UNCLASSIFIED,
                    "No template matched the OCR lines",
                )

            if not sanity_check(lines, labels):
                return self._skip(
                    source,
                    SkipReason.SANITY_CHECK_FAILED,
                    f"Labels of template '{labels.template_name}' "
                    f"not found verbatim",
                )

            result = self._fill_result(labels, components, source)

        except Exception as e:
            logger.exception(f"Unexpected error extracting {source}")
            return self._skip(
                source,
                SkipReason.MALFORMED_INPUT,
                f"{type(e).__name__}: {e}",
            )

        logger.debug(
            f"Extracted {source} with template '{labels.template_name}'"
        )
        return DocumentOutcome(source=source, result=result)

    def extract_document(
        self,
        lines: Sequence[str],
        components: Sequence[TextComponent],
        source: str,
    ) -> Optional[ExtractionResult]:
        """Extraction result for one document, or None if it was skipped."""
        return self.extract(lines, components, source).result

    def process_file(self, json_path: str) -> DocumentOutcome:
        """
        Load an OCR JSON file and extract it.
        Read and format errors become skip outcomes; nothing is raised.
        """
        try:
            document = load_ocr_document(json_path)
        except OcrFormatError as e:
            return self._skip(json_path, SkipReason.MALFORMED_INPUT, str(e))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return self._skip(
                json_path,
                SkipReason.READ_ERROR,
                f"{type(e).__name__}: {e}",
            )
        except Exception as e:
            logger.exception(f"Unexpected error loading {json_path}")
            return self._skip(
                json_path,
                SkipReason.MALFORMED_INPUT,
                f"{type(e).__name__}: {e}",
            )

        return self.extract(document.lines, document.components, json_path)

    def _fill_result(
        self,
        labels: LabelList,
        components: Sequence[TextComponent],
        source: str,
    ) -> ExtractionResult:
        """Resolve every field of the result from the classified labels."""
        return ExtractionResult(
            issue_date=find_value(components, labels.issue_date),
            renew_by_date=find_value(components, labels.renew_by),
            ecard_code=find_value(components, labels.ecard_code),
            full_name=find_value(
                components, labels.name, SearchDirection.UP
            ),
            cert_title=extract_title(components, labels),
            filename=source,
        )

    def _skip(
        self,
        source: str,
        reason: SkipReason,
        message: str,
    ) -> DocumentOutcome:
        logger.warning(f"Skipped {source} ({reason.value}): {message}")
        return DocumentOutcome(
            source=source,
            skip_reason=reason,
            message=message,
        )
