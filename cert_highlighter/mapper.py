from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    FieldCategory,
    FieldMention,
    Highlight,
    HighlightGroup,
    OcrPage,
    OcrWord,
    ParsedFields,
    PixelBox,
)

logger = logging.getLogger(__name__)

CoordinateKey = Tuple[float, float]


def _key(x: float, y: float) -> CoordinateKey:
    return float(x), float(y)


class CoordinateResolver:
    """Joins model mentions to OCR words on their exact top-left corner."""

    def __init__(self, words: Sequence[OcrWord], match_tolerance: float = 0.0):
        self.words = list(words)
        self.match_tolerance = match_tolerance
        # Duplicate top-left corners collide, the last word wins.
        self._by_top_left: Dict[CoordinateKey, OcrWord] = {
            _key(*word.top_left): word for word in self.words
        }

    def resolve(self, mention: FieldMention) -> Optional[OcrWord]:
        word = self._by_top_left.get(_key(*mention.coordinate))
        if word is None and self.match_tolerance > 0:
            word = self._nearest(mention)
        if word is None:
            logger.debug("Dropping mention %r at %s: no OCR word there", mention.word, mention.coordinate)
            return None
        if word.content != mention.word:
            logger.debug("Mention %r resolved to OCR word %r", mention.word, word.content)
        return word

    def _nearest(self, mention: FieldMention) -> Optional[OcrWord]:
        mx, my = mention.coordinate
        best: Optional[OcrWord] = None
        best_distance = math.inf
        for word in self.words:
            if word.content != mention.word:
                continue
            x, y = word.top_left
            distance = math.hypot(x - mx, y - my)
            if distance <= self.match_tolerance and distance < best_distance:
                best, best_distance = word, distance
        return best


def group_mentions(
    category: FieldCategory,
    mentions: Sequence[FieldMention],
    resolver: CoordinateResolver,
    reading_order: bool = False,
) -> List[HighlightGroup]:
    """Partition resolved mentions of one category by groupId, first-seen order."""
    groups: Dict[int, HighlightGroup] = {}
    for mention in mentions:
        word = resolver.resolve(mention)
        if word is None:
            continue
        group = groups.get(mention.groupId)
        if group is None:
            group = HighlightGroup(category=category, group_id=mention.groupId)
            groups[mention.groupId] = group
        if any(member is word for member in group.words):
            continue
        group.words.append(word)
        group.tokens.append(mention.word)

    if reading_order:
        for group in groups.values():
            members = sorted(
                zip(group.words, group.tokens),
                key=lambda pair: (pair[0].top_left[1], pair[0].top_left[0]),
            )
            group.words = [word for word, _ in members]
            group.tokens = [token for _, token in members]

    return list(groups.values())


def union_box(words: Sequence[OcrWord]) -> PixelBox:
    """Smallest axis-aligned box covering every corner of every word."""
    xs = [x for word in words for x in word.xs]
    ys = [y for word in words for y in word.ys]
    return PixelBox(min_x=min(xs), min_y=min(ys), max_x=max(xs), max_y=max(ys))


def normalize_box(box: PixelBox, page_width: float, page_height: float) -> Tuple[float, float, float, float]:
    """Scale a pixel box to the unit square and clamp it inside the page."""
    x = box.min_x / page_width
    y = box.min_y / page_height
    width = (box.max_x - box.min_x) / page_width
    height = (box.max_y - box.min_y) / page_height

    x = max(0.0, min(1.0, x))
    y = max(0.0, min(1.0, y))
    width = max(0.0, min(1.0 - x, width))
    height = max(0.0, min(1.0 - y, height))
    return x, y, width, height


def group_to_highlight(group: HighlightGroup, page: OcrPage) -> Highlight:
    x, y, width, height = normalize_box(union_box(group.words), page.width, page.height)
    return Highlight(
        id=group.highlight_id,
        text=group.text,
        x=x,
        y=y,
        width=width,
        height=height,
    )


def map_fields_to_highlights(
    fields: ParsedFields,
    page: OcrPage,
    match_tolerance: float = 0.0,
    reading_order: bool = False,
) -> List[Highlight]:
    resolver = CoordinateResolver(page.words, match_tolerance=match_tolerance)
    highlights: List[Highlight] = []

    for category in FieldCategory:
        groups = group_mentions(category, fields.mentions(category), resolver, reading_order)
        highlights.extend(group_to_highlight(group, page) for group in groups)

    return highlights
