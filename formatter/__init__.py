"""Pure formatting helpers for bot replies and terminal rendering."""

from .menu import (
    SEPARATOR,
    MenuDocument,
    MenuSegment,
    PlainText,
    SegmentKind,
    classify,
    is_menu,
    is_title,
    item,
    segment,
    title,
)
from .render import HELP_TEXT, INFO_TEXT, render_error, render_message, render_status

__all__ = [
    "SEPARATOR",
    "MenuDocument",
    "MenuSegment",
    "PlainText",
    "SegmentKind",
    "classify",
    "is_menu",
    "is_title",
    "item",
    "segment",
    "title",
    "HELP_TEXT",
    "INFO_TEXT",
    "render_error",
    "render_message",
    "render_status",
]
