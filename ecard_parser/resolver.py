"""
Label Resolver
==============
Finds the value printed next to a label by geometry alone.

An eCard prints each value a short distance above or below its label
("Issue Date" sits under the date, the holder's name sits over the
"has successfully completed..." line). Given the label text and the side
the value is on, the resolver returns the text component whose center is
closest to the label's center.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from .models import Point, SearchDirection, TextComponent

logger = logging.getLogger(__name__)


def find_component(
    components: Sequence[TextComponent],
    fragment: str,
) -> Optional[TextComponent]:
    """First component whose text contains the fragment, or None."""
    for component in components:
        if fragment in component.text:
            return component
    return None


def center_distance(a: Point, b: Point) -> int:
    """Euclidean distance between two points, truncated to an int."""
    return int(math.sqrt((a.x - b.x) ** 2 + (a.y - b.y) ** 2))


def is_on_side(
    candidate: TextComponent,
    label_center: Point,
    direction: SearchDirection,
) -> bool:
    """
    Whether a candidate sits on the requested side of the label.

    The candidate's center is shifted half its own height towards the label
    before comparing, so the candidate's near edge must lie past the label's
    center. A candidate overlapping the half of the label that faces it is
    still accepted.
    """
    center = candidate.center()
    half_height = candidate.rect.height // 2

    if direction == SearchDirection.DOWN:
        return center.y - half_height > label_center.y
    return center.y + half_height < label_center.y


def find_value(
    components: Sequence[TextComponent],
    label_text: str,
    direction: SearchDirection = SearchDirection.DOWN,
) -> str:
    """
    Return the text nearest to a label on the given side of it.

    Args:
        components: Text components of one document, in OCR order.
        label_text: Label to search for (substring match).
        direction: Side of the label the value is printed on.

    Returns:
        The value text, or "" if the label or a suitable value is missing.
    """
    if not components or not label_text:
        logger.debug("find_value called with no components or empty label")
        return ""

    label = find_component(components, label_text)
    if label is None:
        logger.debug(f"Label '{label_text}' not found")
        return ""

    label_center = label.center()
    closest: Optional[TextComponent] = None
    closest_distance = math.inf

    for candidate in components:
        # Skip the label and any repeat of the label phrase
        if label_text in candidate.text:
            continue
        if not is_on_side(candidate, label_center, direction):
            continue

        distance = center_distance(label_center, candidate.center())
        if distance < closest_distance:
            closest_distance = distance
            closest = candidate

    if closest is None:
        logger.debug(
            f"No value found {direction.value} from label '{label_text}'"
        )
        return ""

    return closest.text
