"""
Template Catalog
================
Known eCard layouts and the classifier that recognizes them.

Each template pairs a signature (phrases that must appear somewhere in the
OCR lines, plus lines that must appear verbatim) with the LabelList used to
extract that layout. Templates are tried in catalog order and the first full
match wins, so a more specific variant must come after the layout it varies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import LabelList

logger = logging.getLogger(__name__)


# ─── Line Tests ───────────────────────────────────────────────────────────────


def contains_substring(lines: Sequence[str], fragment: str) -> bool:
    """True if any line contains the fragment anywhere."""
    return any(fragment in line for line in lines)


def contains_line(lines: Sequence[str], line: str) -> bool:
    """True if some line equals the given string exactly."""
    return line in lines


# ─── Template ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Template:
    """A recognizable eCard layout."""

    name: str
    description: str
    required_substrings: tuple[str, ...]
    required_lines: tuple[str, ...]
    labels: LabelList

    def matches(self, lines: Sequence[str]) -> bool:
        return all(
            contains_substring(lines, fragment)
            for fragment in self.required_substrings
        ) and all(
            contains_line(lines, line) for line in self.required_lines
        )


STANDARD = Template(
    name="standard",
    description="Standard AHA course completion eCard",
    required_substrings=(
        "has successfully completed the cognitive",
        "has ",
        " Program.",
    ),
    required_lines=("Issue Date", "Renew By", "eCard Code"),
    labels=LabelList(
        template_name="standard",
        issue_date="Issue Date",
        renew_by="Renew By",
        ecard_code="eCard Code",
        name="has successfully completed the cognitive and",
        cert_title_paragraph_begin="has successfully completed",
        cert_title_paragraph_end=" Program.",
        cert_title_token_begin="Heart Association ",
        cert_title_token_end=" Program.",
    ),
)

STANDARD_SPACED_CODE = Template(
    name="standard_spaced_code",
    description="Standard eCard where OCR split the code label as 'e Card Code'",
    required_substrings=(
        "has successfully completed the cognitive",
        "has ",
        " Program.",
    ),
    required_lines=("Issue Date", "Renew By", "e Card Code"),
    labels=LabelList(
        template_name="standard_spaced_code",
        issue_date="Issue Date",
        renew_by="Renew By",
        ecard_code="e Card Code",
        name="has successfully completed the cognitive and",
        cert_title_paragraph_begin="has successfully completed",
        cert_title_paragraph_end=" Program.",
        cert_title_token_begin="Heart Association ",
        cert_title_token_end=" Program.",
    ),
)

RQI_GOLD_STAMP = Template(
    name="rqi_gold_stamp",
    description="Gold stamp Resuscitation Quality Improvement eCredential",
    required_substrings=(
        "This is to verify that",
        "has demonstrated competence in",
        "Resuscitation Quality Improvement",
    ),
    required_lines=(
        "Date of last activity:",
        "eCredential valid until:",
        "eCredential number:",
    ),
    labels=LabelList(
        template_name="rqi_gold_stamp",
        issue_date="Date of last activity:",
        renew_by="eCredential valid until:",
        ecard_code="eCredential number:",
        name="has demonstrated competence in ",
        cert_title_paragraph_begin="has demonstrated competence",
        cert_title_paragraph_end="Heart Association Program.",
        cert_title_token_begin="competence in ",
        cert_title_token_end=". Competence has been ",
    ),
)

# Priority order matters: first match wins
TEMPLATE_CATALOG: tuple[Template, ...] = (
    STANDARD,
    STANDARD_SPACED_CODE,
    RQI_GOLD_STAMP,
)


# ─── Classification ───────────────────────────────────────────────────────────


def match_template(
    lines: Sequence[str],
    catalog: Sequence[Template] = TEMPLATE_CATALOG,
) -> Optional[Template]:
    """Return the first template in the catalog whose signature matches."""
    for template in catalog:
        if template.matches(lines):
            logger.debug(f"Classified as template '{template.name}'")
            return template
    return None


def classify(
    lines: Sequence[str],
    catalog: Sequence[Template] = TEMPLATE_CATALOG,
) -> Optional[LabelList]:
    """
    Pick the label list for the layout that produced these OCR lines.

    Args:
        lines: Recognized text lines in reading order.
        catalog: Templates to try, in priority order.

    Returns:
        The matching template's LabelList, or None if no template matches.
    """
    template = match_template(lines, catalog)
    return template.labels if template else None


def get_template(name: str) -> Optional[Template]:
    """Look up a catalog template by name."""
    for template in TEMPLATE_CATALOG:
        if template.name == name:
            return template
    return None


# ─── Sanity Check ─────────────────────────────────────────────────────────────


def sanity_check(
    lines: Sequence[str],
    labels: Optional[LabelList],
) -> bool:
    """
    Verify the classified labels really occur in the document.

    Classification is substring based and can false-positive. Before the
    resolver searches for a label, make sure the value labels are present as
    exact lines and the name phrase appears inside some line.
    """
    if labels is None:
        return False
    if not lines:
        return False

    for label in (labels.issue_date, labels.renew_by, labels.ecard_code):
        if not contains_line(lines, label):
            logger.debug(f"Sanity check: label '{label}' not found as a line")
            return False

    if not contains_substring(lines, labels.name):
        logger.debug(f"Sanity check: name phrase '{labels.name}' not found")
        return False

    return True
