"""
Batch Processor
===============
Drains the work queue: extracts every pending OCR JSON, writes the results
to CSV in fixed-size batches, and marks each written document complete.

Architecture:
    - Documents are processed one at a time, in queue order
    - Every `batch_size` successful results are flushed to a new CSV file
    - Rows are marked complete only after their CSV file is written
    - Skipped documents stay pending with the skip reason as a comment
    - A stop request or deadline is honoured between documents

Usage:
    processor = BatchProcessor(config)
    report = processor.run()
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from . import database as db
from .csv_export import write_batch
from .engine import ExtractionEngine, ExtractorConfig
from .models import BatchReport, ExtractionResult, SkippedDocument

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Sequential work queue processor.

    One engine is shared across all documents; it holds no per-document
    state, so a failure on one file never affects the next.
    """

    def __init__(
        self,
        config: ExtractorConfig,
        engine: Optional[ExtractionEngine] = None,
    ):
        self.config = config
        self.engine = engine or ExtractionEngine(config)
        self._stop_requested = False

    def request_stop(self):
        """Signal the processor to stop after the current document."""
        self._stop_requested = True

    def run(
        self,
        max_documents: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> BatchReport:
        """
        Process pending documents from the work queue.

        Args:
            max_documents: Process at most this many documents.
            deadline_seconds: Stop starting new documents after this long.
            progress_callback: Optional callable(current, total, path).

        Returns:
            BatchReport describing the run.
        """
        self._stop_requested = False
        report = BatchReport()
        paths = db.list_pending_paths(
            limit=max_documents, db_path=self.config.db_path
        )
        total = len(paths)
        logger.info(
            f"BEGIN JSON to CSV conversion: {total} documents, "
            f"batch size {self.config.batch_size}"
        )

        started = time.monotonic()
        pending: list[ExtractionResult] = []

        for idx, path in enumerate(paths, start=1):
            if self._stop_requested:
                logger.info("Stop requested, ending batch early")
                report.stopped_early = True
                break
            if (
                deadline_seconds is not None
                and time.monotonic() - started >= deadline_seconds
            ):
                logger.info(
                    f"Deadline of {deadline_seconds}s reached, ending batch early"
                )
                report.stopped_early = True
                break

            logger.info(f"{idx} {path}")
            outcome = self.engine.process_file(path)
            report.documents_processed += 1

            if outcome.result is not None:
                pending.append(outcome.result)
                report.documents_extracted += 1
            else:
                report.skipped.append(SkippedDocument(
                    source=path,
                    reason=outcome.skip_reason,
                    message=outcome.message,
                ))
                db.record_comment(
                    path,
                    f"{outcome.skip_reason.value}: {outcome.message}",
                    db_path=self.config.db_path,
                )

            if len(pending) >= self.config.batch_size:
                self._flush(pending, report)
                pending = []

            if progress_callback:
                progress_callback(idx, total, path)

        if pending:
            self._flush(pending, report)

        logger.info(
            f"END JSON to CSV conversion: {report.documents_extracted}/"
            f"{report.documents_processed} extracted, "
            f"{len(report.skipped)} skipped, "
            f"{len(report.csv_files)} CSV files"
        )
        return report

    def _flush(self, results: list[ExtractionResult], report: BatchReport):
        """Write a batch to CSV, then mark its documents complete."""
        logger.info(f"Saving a batch of {len(results)} rows to CSV")
        csv_path = write_batch(results, self.config.csv_dir)
        if csv_path is None:
            # Leave the rows pending so the next run retries them
            logger.error(
                f"Batch of {len(results)} rows not saved; "
                f"documents left pending"
            )
            return

        db.mark_complete(
            (r.filename for r in results), db_path=self.config.db_path
        )
        report.csv_files.append(str(csv_path))
        report.rows_written += len(results)
