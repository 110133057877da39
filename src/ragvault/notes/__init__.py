"""Conversation persistence into a Markdown notes vault."""

from .cleanup import clean_message_content
from .writer import NoteWriteError, NoteWriter, format_conversation, note_title

__all__ = [
    "NoteWriteError",
    "NoteWriter",
    "clean_message_content",
    "format_conversation",
    "note_title",
]
