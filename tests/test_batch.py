"""
Test Suite for the Batch Pipeline
=================================
Tests for OCR JSON reading, the sqlite work queue, CSV export, the batch
processor and the CLI.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime
from pathlib import Path

import pytest
from click.testing import CliRunner
from rich.console import Console

from ecard_parser import cli as cli_module
from ecard_parser import database as db
from ecard_parser.batch import BatchProcessor
from ecard_parser.csv_export import csv_file_name, write_batch
from ecard_parser.engine import ExtractionEngine, ExtractorConfig
from ecard_parser.models import ExtractionResult, Rectangle, SkipReason
from ecard_parser.ocr_reader import (
    OcrFormatError,
    load_ocr_document,
    parse_ocr_payload,
)


def _ocr_line(text: str, box: tuple[int, int, int, int]) -> dict:
    x, y, w, h = box
    # Upper-left, upper-right, lower-left, lower-right as the OCR service emits
    return {
        "Text": text,
        "BoundingPolygon": [
            {"X": x, "Y": y},
            {"X": x + w, "Y": y},
            {"X": x, "Y": y + h},
            {"X": x + w, "Y": y + h},
        ],
    }


def _payload(layout) -> dict:
    return {
        "Value": {
            "Read": {
                "Blocks": [
                    {"Lines": [_ocr_line(text, box) for text, box in layout]}
                ]
            }
        }
    }


def _write_card(directory: Path, name: str, layout) -> Path:
    path = directory / name
    path.write_text(json.dumps(_payload(layout)), encoding="utf-8")
    return path


def _with_code(layout, code: str):
    return [(code if text == "ABC123XYZ" else text, box) for text, box in layout]


# ═══════════════════════════════════════════════════════════════════════════════
# OCR READER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestOcrReader:
    """Test OCR JSON parsing."""

    def test_lines_and_components(self, standard_layout):
        document = parse_ocr_payload(_payload(standard_layout))

        assert document.lines == [text for text, _ in standard_layout]
        assert [c.text for c in document.components] == document.lines
        assert document.components[0].rect == Rectangle(
            x=100, y=100, width=200, height=30
        )

    def test_non_list_properties_ignored(self):
        payload = _payload([("Issue Date", (0, 0, 100, 20))])
        payload["Value"]["Read"]["Blocks"][0]["Confidence"] = 0.98
        document = parse_ocr_payload(payload)
        assert document.lines == ["Issue Date"]

    def test_only_first_block_read(self):
        payload = _payload([("first", (0, 0, 10, 10))])
        payload["Value"]["Read"]["Blocks"].append(
            {"Lines": [_ocr_line("second", (0, 0, 10, 10))]}
        )
        assert parse_ocr_payload(payload).lines == ["first"]

    def test_string_coordinates(self):
        line = _ocr_line("Renew By", (10, 20, 30, 40))
        for point in line["BoundingPolygon"]:
            point["X"] = str(point["X"])
        payload = {"Value": {"Read": {"Blocks": [{"Lines": [line]}]}}}

        component = parse_ocr_payload(payload).components[0]
        assert component.rect == Rectangle(x=10, y=20, width=30, height=40)

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"Value": {"Read": {"Blocks": []}}},
            {"Value": {"Read": {"Blocks": ["not an object"]}}},
            [],
            None,
        ],
    )
    def test_missing_block(self, payload):
        with pytest.raises(OcrFormatError):
            parse_ocr_payload(payload)

    def test_line_without_text(self):
        line = _ocr_line("x", (0, 0, 1, 1))
        del line["Text"]
        payload = {"Value": {"Read": {"Blocks": [{"Lines": [line]}]}}}
        with pytest.raises(OcrFormatError):
            parse_ocr_payload(payload)

    def test_polygon_with_three_points(self):
        line = _ocr_line("x", (0, 0, 1, 1))
        line["BoundingPolygon"].pop()
        payload = {"Value": {"Read": {"Blocks": [{"Lines": [line]}]}}}
        with pytest.raises(OcrFormatError):
            parse_ocr_payload(payload)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_coordinate(self, value):
        line = _ocr_line("Issue Date", (0, 0, 100, 20))
        line["BoundingPolygon"][1]["X"] = value
        payload = {"Value": {"Read": {"Blocks": [{"Lines": [line]}]}}}
        with pytest.raises(OcrFormatError, match=r"Lines\[0\]"):
            parse_ocr_payload(payload)

    def test_load_from_file(self, tmp_path, rqi_layout):
        path = _write_card(tmp_path, "rqi.json", rqi_layout)
        document = load_ocr_document(path)
        assert document.lines[0] == "This is to verify that"
        assert len(document.components) == len(rqi_layout)


class TestProcessFile:
    """Test file-level extraction error handling."""

    @pytest.fixture
    def engine(self):
        return ExtractionEngine(ExtractorConfig(), configure_logging=False)

    def test_extracts_file(self, engine, tmp_path, standard_layout):
        path = _write_card(tmp_path, "jane.json", standard_layout)
        outcome = engine.process_file(str(path))

        assert outcome.succeeded
        assert outcome.result.filename == str(path)
        assert outcome.result.ecard_code == "ABC123XYZ"

    def test_missing_file(self, engine, tmp_path):
        outcome = engine.process_file(str(tmp_path / "missing.json"))
        assert outcome.skip_reason == SkipReason.READ_ERROR

    def test_invalid_json(self, engine, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        assert engine.process_file(str(path)).skip_reason == SkipReason.READ_ERROR

    def test_wrong_structure(self, engine, tmp_path):
        path = tmp_path / "wrong.json"
        path.write_text(json.dumps({"Value": {}}), encoding="utf-8")
        outcome = engine.process_file(str(path))
        assert outcome.skip_reason == SkipReason.MALFORMED_INPUT
        assert "Blocks" in outcome.message

    @pytest.mark.parametrize("token", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_coordinate(self, engine, tmp_path, standard_layout, token):
        path = tmp_path / "nan.json"
        text = json.dumps(_payload(standard_layout))
        # json.load accepts these bare tokens
        text = text.replace('"X": 100', f'"X": {token}', 1)
        path.write_text(text, encoding="utf-8")

        outcome = engine.process_file(str(path))

        assert outcome.result is None
        assert outcome.skip_reason == SkipReason.MALFORMED_INPUT

    def test_deeply_nested_json(self, engine, tmp_path):
        path = tmp_path / "nested.json"
        path.write_text("[" * 200000 + "]" * 200000, encoding="utf-8")

        outcome = engine.process_file(str(path))

        assert outcome.skip_reason == SkipReason.MALFORMED_INPUT
        assert "RecursionError" in outcome.message


# ═══════════════════════════════════════════════════════════════════════════════
# WORK QUEUE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestWorkQueue:
    """Test the sqlite work queue."""

    @pytest.fixture
    def db_path(self, tmp_path):
        path = str(tmp_path / "queue.sqlite")
        db.init_db(path)
        return path

    def test_init_is_idempotent(self, db_path):
        db.init_db(db_path)
        assert db.db_exists(db_path)
        assert db.count_all(db_path) == 0

    def test_enqueue_file(self, db_path):
        assert db.enqueue_file("a.json", db_path=db_path) is True
        assert db.enqueue_file("a.json", db_path=db_path) is False
        assert db.count_pending(db_path) == 1
        assert db.get_entry("a.json", db_path)["IsComplete"] == 0

    def test_enqueue_directory(self, db_path, tmp_path):
        cards = tmp_path / "cards"
        cards.mkdir()
        (cards / "b.json").write_text("{}")
        (cards / "a.json").write_text("{}")
        (cards / "notes.txt").write_text("")
        (cards / "nested").mkdir()
        (cards / "nested" / "c.json").write_text("{}")

        assert db.enqueue_directory(str(cards), db_path) == 2
        assert db.enqueue_directory(str(cards), db_path) == 2
        assert db.list_pending_paths(db_path=db_path) == [
            str(cards / "a.json"),
            str(cards / "b.json"),
        ]

    def test_mark_complete(self, db_path):
        for name in ["a.json", "b.json", "c.json"]:
            db.enqueue_file(name, db_path=db_path)

        assert db.mark_complete(["a.json", "c.json"], db_path=db_path) == 2
        assert db.list_pending_paths(db_path=db_path) == ["b.json"]
        assert db.list_all_paths(db_path) == ["a.json", "b.json", "c.json"]

    def test_pending_limit(self, db_path):
        for name in ["a.json", "b.json", "c.json"]:
            db.enqueue_file(name, db_path=db_path)
        assert db.list_pending_paths(limit=2, db_path=db_path) == [
            "a.json",
            "b.json",
        ]

    def test_record_comment(self, db_path):
        db.enqueue_file("a.json", db_path=db_path)
        db.enqueue_file("b.json", db_path=db_path)

        assert db.record_comment("a.json", "unclassified: no match", db_path=db_path)
        assert not db.record_comment("missing.json", "x", db_path=db_path)
        assert db.list_commented(db_path) == [
            {"Path": "a.json", "Comments": "unclassified: no match"}
        ]

        db.mark_complete(["a.json"], db_path=db_path)
        assert db.list_commented(db_path) == []


# ═══════════════════════════════════════════════════════════════════════════════
# CSV EXPORT TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCsvExport:
    """Test tab-delimited batch files."""

    def _results(self):
        return [
            ExtractionResult(
                cert_title="Basic Life Support (CPR and AED)",
                full_name="Jane Doe",
                issue_date="01/15/2024",
                renew_by_date="01/2026",
                ecard_code="ABC123XYZ",
                filename="jane.json",
            ),
            ExtractionResult(filename="empty.json"),
        ]

    def test_file_name(self):
        assert csv_file_name(datetime(2024, 5, 1, 13, 45, 10)) == (
            "CSV-2024-05-01-13-45-10.txt"
        )

    def test_write_batch(self, tmp_path):
        path = write_batch(self._results(), str(tmp_path))

        with open(path, encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f, delimiter="\t"))

        assert rows[0] == [
            "CertTitle", "FullName", "IssueDate",
            "RenewByDate", "EcardCode", "Filename",
        ]
        assert rows[1][1] == "Jane Doe"
        assert rows[2] == ["", "", "", "", "", "empty.json"]

    def test_same_second_does_not_overwrite(self, tmp_path):
        stamp = datetime(2024, 5, 1, 13, 45, 10)
        first = write_batch(self._results(), str(tmp_path), timestamp=stamp)
        second = write_batch(self._results()[:1], str(tmp_path), timestamp=stamp)

        assert first.name == "CSV-2024-05-01-13-45-10.txt"
        assert second.name == "CSV-2024-05-01-13-45-10-1.txt"

    def test_empty_batch_not_written(self, tmp_path):
        assert write_batch([], str(tmp_path)) is None
        assert list(tmp_path.iterdir()) == []

    def test_creates_output_dir(self, tmp_path):
        out = tmp_path / "csv" / "out"
        assert write_batch(self._results(), str(out)).parent == out


# ═══════════════════════════════════════════════════════════════════════════════
# BATCH PROCESSOR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def queued_cards(tmp_path, standard_layout, rqi_layout):
    """Three good cards and one unrecognized document, queued."""
    cards = tmp_path / "cards"
    cards.mkdir()
    _write_card(cards, "card_1.json", _with_code(standard_layout, "CODE-1"))
    _write_card(cards, "card_2.json", _with_code(standard_layout, "CODE-2"))
    _write_card(cards, "card_3.json", rqi_layout)
    _write_card(cards, "junk.json", [("Certificate of Attendance", (0, 0, 300, 20))])

    config = ExtractorConfig(
        db_path=str(tmp_path / "queue.sqlite"),
        json_dir=str(cards),
        csv_dir=str(tmp_path / "csv"),
        batch_size=2,
    )
    db.init_db(config.db_path)
    db.enqueue_directory(config.json_dir, config.db_path)
    return config


def _processor(config: ExtractorConfig) -> BatchProcessor:
    return BatchProcessor(
        config, engine=ExtractionEngine(config, configure_logging=False)
    )


class TestBatchProcessor:
    """Test work queue draining and CSV batching."""

    def test_full_run(self, queued_cards):
        report = _processor(queued_cards).run()

        assert report.documents_processed == 4
        assert report.documents_extracted == 3
        assert report.rows_written == 3
        assert len(report.csv_files) == 2
        assert report.success_rate == 75.0
        assert report.skip_breakdown == {"unclassified": 1}
        assert not report.stopped_early

        junk = str(Path(queued_cards.json_dir) / "junk.json")
        assert [s.source for s in report.skipped] == [junk]
        assert db.list_pending_paths(db_path=queued_cards.db_path) == [junk]
        assert db.get_entry(junk, queued_cards.db_path)["Comments"].startswith(
            "unclassified"
        )

    def test_csv_contents(self, queued_cards):
        report = _processor(queued_cards).run()

        codes = []
        for csv_path in report.csv_files:
            with open(csv_path, encoding="utf-8", newline="") as f:
                rows = list(csv.DictReader(f, delimiter="\t"))
            codes.extend(row["EcardCode"] for row in rows)

        assert codes == ["CODE-1", "CODE-2", "RQI-998877"]

    def test_second_run_only_retries_skipped(self, queued_cards):
        _processor(queued_cards).run()
        report = _processor(queued_cards).run()

        assert report.documents_processed == 1
        assert report.documents_extracted == 0
        assert report.csv_files == []

    def test_max_documents(self, queued_cards):
        report = _processor(queued_cards).run(max_documents=1)

        assert report.documents_processed == 1
        assert report.rows_written == 1
        assert db.count_pending(queued_cards.db_path) == 3

    def test_request_stop(self, queued_cards):
        processor = _processor(queued_cards)
        seen = []

        def on_progress(current, total, path):
            seen.append((current, total))
            processor.request_stop()

        report = processor.run(progress_callback=on_progress)

        assert seen == [(1, 4)]
        assert report.stopped_early
        assert report.documents_processed == 1
        # The finished document is still flushed
        assert report.rows_written == 1

    def test_zero_deadline(self, queued_cards):
        report = _processor(queued_cards).run(deadline_seconds=0)

        assert report.stopped_early
        assert report.documents_processed == 0
        assert db.count_pending(queued_cards.db_path) == 4

    def test_failed_write_leaves_documents_pending(self, queued_cards, monkeypatch):
        monkeypatch.setattr(
            "ecard_parser.batch.write_batch", lambda results, csv_dir: None
        )
        report = _processor(queued_cards).run()

        assert report.documents_extracted == 3
        assert report.rows_written == 0
        assert db.count_pending(queued_cards.db_path) == 4

    def test_unreadable_file_does_not_stop_batch(self, queued_cards):
        broken = Path(queued_cards.json_dir) / "zz_broken.json"
        broken.write_text("{", encoding="utf-8")
        db.enqueue_file(str(broken), db_path=queued_cards.db_path)

        report = _processor(queued_cards).run()

        assert report.documents_processed == 5
        assert report.skip_breakdown == {"unclassified": 1, "read_error": 1}

    def test_non_finite_coordinate_does_not_stop_batch(self, tmp_path, standard_layout):
        cards = tmp_path / "cards"
        cards.mkdir()
        bad = _write_card(cards, "a_bad.json", standard_layout)
        bad.write_text(
            bad.read_text(encoding="utf-8").replace('"X": 100', '"X": Infinity', 1),
            encoding="utf-8",
        )
        _write_card(cards, "b_good.json", standard_layout)

        config = ExtractorConfig(
            db_path=str(tmp_path / "queue.sqlite"),
            csv_dir=str(tmp_path / "csv"),
        )
        db.init_db(config.db_path)
        db.enqueue_directory(str(cards), config.db_path)

        report = _processor(config).run()

        assert report.documents_processed == 2
        assert report.documents_extracted == 1
        assert report.skip_breakdown == {"malformed_input": 1}
        assert db.list_pending_paths(db_path=config.db_path) == [str(bad)]


# ═══════════════════════════════════════════════════════════════════════════════
# CLI TESTS
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setattr(cli_module, "console", Console(width=200))
    return CliRunner()


class TestCli:
    """Test the click commands end to end."""

    def test_templates(self, runner):
        result = runner.invoke(cli_module.cli, ["templates"])
        assert result.exit_code == 0
        assert "standard_spaced_code" in result.output
        assert "rqi_gold_stamp" in result.output

    def test_init_scan_status(self, runner, tmp_path, standard_layout):
        db_path = str(tmp_path / "queue.sqlite")
        cards = tmp_path / "cards"
        cards.mkdir()
        _write_card(cards, "jane.json", standard_layout)

        result = runner.invoke(cli_module.cli, ["init-db", "--db", db_path])
        assert result.exit_code == 0
        assert "Database created" in result.output

        result = runner.invoke(
            cli_module.cli, ["scan", str(cards), "--db", db_path]
        )
        assert result.exit_code == 0
        assert db.count_pending(db_path) == 1

        result = runner.invoke(cli_module.cli, ["status", "--db", db_path])
        assert result.exit_code == 0
        assert "Pending" in result.output

    def test_run(self, runner, queued_cards):
        result = runner.invoke(
            cli_module.cli,
            [
                "run",
                "--db", queued_cards.db_path,
                "--csv-dir", queued_cards.csv_dir,
                "--batch-size", "10",
                "--log-level", "ERROR",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Batch Processing Summary" in result.output
        assert len(list(Path(queued_cards.csv_dir).glob("CSV-*.txt"))) == 1
        assert db.count_pending(queued_cards.db_path) == 1

    def test_run_without_database(self, runner, tmp_path):
        result = runner.invoke(
            cli_module.cli, ["run", "--db", str(tmp_path / "none.sqlite")]
        )
        assert result.exit_code == 1
        assert "init-db" in result.output

    @pytest.mark.parametrize("command", ["init-db", "status", "run"])
    def test_invalid_batch_size_env(self, runner, tmp_path, monkeypatch, command):
        monkeypatch.setenv("ECARD_CSV_BATCH_SIZE", "lots")
        result = runner.invoke(
            cli_module.cli, [command, "--db", str(tmp_path / "queue.sqlite")]
        )

        assert result.exit_code == 1
        assert "Configuration error" in result.output
        assert "ECARD_CSV_BATCH_SIZE" in result.output
        assert not (tmp_path / "queue.sqlite").exists()

    def test_extract_json_output(self, runner, tmp_path, standard_layout):
        path = _write_card(tmp_path, "jane.json", standard_layout)
        result = runner.invoke(
            cli_module.cli, ["extract", str(path), "--json-output"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["result"]["full_name"] == "Jane Doe"
        assert data["result"]["cert_title"] == "Basic Life Support (CPR and AED)"

    def test_extract_skipped(self, runner, tmp_path):
        path = _write_card(tmp_path, "junk.json", [("Hello", (0, 0, 10, 10))])
        result = runner.invoke(
            cli_module.cli, ["extract", str(path), "--log-level", "ERROR"]
        )

        assert result.exit_code == 1
        assert "unclassified" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
