"""
Paragraph Extractor
===================
Rebuilds a multi-line paragraph from its first and last lines and pulls a
value out of it.

The certificate title wraps over several OCR lines, and OCR may split a
line into several fragments. The paragraph is located by two anchor
phrases; every fragment whose center falls in the region between them is
collected top to bottom, joined into one string, and the title is cut out
between two tokens.

The region is the begin anchor's top-left corner stretched to the end
anchor's bottom-right corner. It assumes the end anchor lies below and to
the right of the begin anchor, and a paragraph that wraps further left than
its first line will be clipped.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from .models import LabelList, Rectangle, TextComponent
from .resolver import find_component

logger = logging.getLogger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")


def paragraph_rectangle(
    begin: TextComponent,
    end: TextComponent,
) -> Rectangle:
    """Region spanning from the begin component to the end component."""
    return Rectangle(
        x=begin.rect.left,
        y=begin.rect.top,
        width=(end.rect.left - begin.rect.left) + end.rect.width,
        height=(end.rect.top - begin.rect.top) + end.rect.height,
    )


def components_within(
    components: Sequence[TextComponent],
    region: Rectangle,
) -> list[TextComponent]:
    """Components whose center lies in the region, sorted top to bottom."""
    inside = [c for c in components if region.contains(c.center())]
    # Stable sort keeps OCR order for fragments on the same line
    return sorted(inside, key=lambda c: c.rect.top)


def join_component_text(components: Sequence[TextComponent]) -> str:
    """Join component text with single spaces and collapse whitespace."""
    if not components:
        return ""
    text = " ".join(c.text for c in components)
    return _WHITESPACE_RUN.sub(" ", text).strip()


def text_between(text: str, token_begin: str, token_end: str) -> str:
    """
    Substring strictly between the first token_begin and the first
    token_end after it, trimmed. Empty if either token is missing.
    """
    if not text or not token_begin or not token_end:
        return ""

    start = text.find(token_begin)
    if start == -1:
        return ""
    start += len(token_begin)

    end = text.find(token_end, start)
    if end == -1:
        return ""

    return text[start:end].strip()


def extract_paragraph(
    components: Sequence[TextComponent],
    begin_anchor: str,
    end_anchor: str,
) -> str:
    """
    Reassembled text of the paragraph bounded by two anchor phrases.

    Returns "" if either anchor phrase is not on the document.
    """
    begin = find_component(components, begin_anchor)
    if begin is None:
        logger.debug(f"Paragraph begin anchor '{begin_anchor}' not found")
        return ""

    end = find_component(components, end_anchor)
    if end is None:
        logger.debug(f"Paragraph end anchor '{end_anchor}' not found")
        return ""

    region = paragraph_rectangle(begin, end)
    return join_component_text(components_within(components, region))


def extract_title(
    components: Sequence[TextComponent],
    labels: LabelList,
) -> str:
    """Certificate title cut from the title paragraph, or ""."""
    paragraph = extract_paragraph(
        components,
        labels.cert_title_paragraph_begin,
        labels.cert_title_paragraph_end,
    )
    return text_between(
        paragraph,
        labels.cert_title_token_begin,
        labels.cert_title_token_end,
    )
