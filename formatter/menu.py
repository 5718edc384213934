"""Classification and segmentation of bot replies that carry a meal menu."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union

MENU_KEYWORDS: Tuple[str, ...] = ("Desayuno", "Almuerzo", "Cena")
# Merienda only titles a section inside a reply already identified as a menu.
TITLE_KEYWORDS: Tuple[str, ...] = MENU_KEYWORDS + ("Merienda",)
SEGMENT_DELIMITER = ", "
SEPARATOR_MARKER = "*" * 16


class SegmentKind(str, Enum):
    TITLE = "title"
    SEPARATOR = "separator"
    ITEM = "item"


@dataclass(frozen=True)
class MenuSegment:
    """One entry of a segmented menu reply."""

    kind: SegmentKind
    text: str = ""


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class MenuDocument:
    """Ordered segments derived from a bot reply; recomputed on demand."""

    source: str
    segments: Tuple[MenuSegment, ...]

    @property
    def titles(self) -> List[str]:
        return [seg.text for seg in self.segments if seg.kind is SegmentKind.TITLE]


def title(text: str) -> MenuSegment:
    return MenuSegment(SegmentKind.TITLE, text)


def item(text: str) -> MenuSegment:
    return MenuSegment(SegmentKind.ITEM, text)


SEPARATOR = MenuSegment(SegmentKind.SEPARATOR)


def is_menu(text: str) -> bool:
    """Return ``True`` when ``text`` names breakfast, lunch or dinner."""

    return any(keyword in text for keyword in MENU_KEYWORDS)


def is_title(entry: str) -> bool:
    return any(keyword in entry for keyword in TITLE_KEYWORDS)


def segment(text: str) -> List[MenuSegment]:
    """Split ``text`` on ``", "`` and tag every entry.

    Entries mentioning a meal keyword (Merienda included) become titles, the
    sixteen-asterisk marker becomes a separator and everything else is an
    item. Never raises.
    """

    segments: List[MenuSegment] = []
    for entry in text.split(SEGMENT_DELIMITER):
        if is_title(entry):
            segments.append(title(entry))
        elif entry == SEPARATOR_MARKER:
            segments.append(SEPARATOR)
        else:
            segments.append(item(entry))
    return segments


def classify(text: str) -> Union[PlainText, MenuDocument]:
    if not is_menu(text):
        return PlainText(text)
    return MenuDocument(source=text, segments=tuple(segment(text)))


__all__ = [
    "MENU_KEYWORDS",
    "TITLE_KEYWORDS",
    "SEGMENT_DELIMITER",
    "SEPARATOR_MARKER",
    "SegmentKind",
    "MenuSegment",
    "PlainText",
    "MenuDocument",
    "title",
    "item",
    "SEPARATOR",
    "is_menu",
    "is_title",
    "segment",
    "classify",
]
