"""
Shared fixtures: synthetic eCard layouts as (text, (x, y, width, height))
tuples in OCR reading order, coordinates in image pixels.
"""

from __future__ import annotations

import logging

import pytest

ECARD_ENV_VARS = (
    "ECARD_DB_PATH",
    "ECARD_JSON_DIR",
    "ECARD_CSV_DIR",
    "ECARD_LOG_DIR",
    "ECARD_LOG_LEVEL",
    "ECARD_CSV_BATCH_SIZE",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep ECARD_* settings and logger handlers from leaking between tests."""
    for var in ECARD_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    package_logger = logging.getLogger("ecard_parser")
    handlers_before = list(package_logger.handlers)
    level_before = package_logger.level
    yield
    for handler in list(package_logger.handlers):
        if handler not in handlers_before:
            package_logger.removeHandler(handler)
            handler.close()
    package_logger.setLevel(level_before)


@pytest.fixture
def standard_layout():
    """Standard course completion eCard."""
    return [
        ("Jane Doe", (100, 100, 200, 30)),
        ("has successfully completed the cognitive and", (20, 140, 360, 20)),
        ("skills evaluations in accordance with the curriculum of the",
         (20, 165, 360, 20)),
        ("American Heart Association Basic Life Support (CPR and AED) Program.",
         (20, 190, 360, 20)),
        ("Issue Date", (20, 260, 100, 20)),
        ("Renew By", (150, 260, 100, 20)),
        ("eCard Code", (280, 260, 100, 20)),
        ("01/15/2024", (20, 285, 100, 20)),
        ("01/2026", (150, 285, 100, 20)),
        ("ABC123XYZ", (280, 285, 100, 20)),
    ]


@pytest.fixture
def rqi_layout():
    """Gold stamp RQI eCredential."""
    return [
        ("This is to verify that", (100, 60, 200, 20)),
        ("John Smith", (100, 90, 200, 30)),
        ("has demonstrated competence in Resuscitation Quality Improvement",
         (20, 130, 360, 20)),
        ("Healthcare Provider Basic Life Support. Competence has been",
         (20, 155, 360, 20)),
        ("verified through the American Heart Association Program.",
         (20, 180, 360, 20)),
        ("Date of last activity:", (20, 230, 160, 20)),
        ("eCredential valid until:", (200, 230, 160, 20)),
        ("eCredential number:", (380, 230, 160, 20)),
        ("03/01/2024", (20, 255, 160, 20)),
        ("06/01/2024", (200, 255, 160, 20)),
        ("RQI-998877", (380, 255, 160, 20)),
    ]
