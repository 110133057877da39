"""Note writer for saving conversations into a Markdown vault.

Hidden design decisions:
- Folder layout inside the vault
- Note naming from the first user question
- Front matter fields and section layout
- How repeated saves of one conversation update the same note
"""

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import frontmatter

from .cleanup import clean_message_content, strip_html, truncate

if TYPE_CHECKING:
    from ..conversation.models import ChatMessage

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50
REFERENCE_PREVIEW_LENGTH = 200
INVALID_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


class NoteWriteError(Exception):
    """Conversation could not be written to the vault."""


def _section_markers(conversation_id: str) -> tuple[str, str]:
    return (
        f"<!-- ragvault:conversation {conversation_id} -->",
        f"<!-- /ragvault:conversation {conversation_id} -->",
    )


def note_title(messages: Sequence["ChatMessage"], now: datetime | None = None) -> str:
    """Derive a file-safe note title from the first user message."""
    first_user = next((m for m in messages if m.role == "user" and m.content.strip()), None)
    if first_user is None:
        stamp = (now or datetime.now()).strftime("%Y-%m-%d %H-%M-%S")
        return f"RAGFlow Conversation {stamp}"

    title = " ".join(first_user.content.split())[:TITLE_MAX_LENGTH]
    return INVALID_FILENAME_CHARS.sub("_", title).strip() or "RAGFlow Conversation"


def format_conversation(
    messages: Sequence["ChatMessage"],
    assistant_name: str,
    saved_at: datetime,
) -> str:
    """Render a conversation as Markdown.

    Temporary messages and messages that are empty after cleanup are skipped.
    """
    parts = [
        "# RAGFlow Conversation\n\n",
        f"*Chat Assistant: {assistant_name}*\n\n",
        f"*Date: {saved_at.strftime('%Y-%m-%d %H:%M:%S')}*\n\n",
        "---\n\n",
    ]

    for message in messages:
        if message.temporary:
            continue

        content = clean_message_content(message.content)
        if not content:
            continue

        role = "**You**" if message.role == "user" else "**RAGFlow**"
        parts.append(f"### {role}\n\n{content}\n\n")

        if message.incomplete:
            parts.append("_(incomplete response)_\n\n")

        if message.references:
            parts.append("**References:**\n\n")
            for ref in message.references:
                ref_content = truncate(strip_html(ref.content).strip(), REFERENCE_PREVIEW_LENGTH)
                parts.append(f"- **{ref.document_name or 'Unknown document'}**: {ref_content}\n")
            parts.append("\n")

    return "".join(parts).rstrip() + "\n"


class NoteWriter:
    """Writes conversations as Markdown notes inside a vault directory.

    Each conversation is one section of a note, delimited by HTML comment
    markers. Saving the same conversation again replaces its section, so
    auto-save after every answer keeps a single copy.
    """

    def __init__(self, vault_path: str | Path, folder: str = "RAGFlow Conversations"):
        self._vault_path = Path(vault_path).expanduser()
        self._folder = folder.strip("/")

    @property
    def folder_path(self) -> Path:
        return self._vault_path / self._folder if self._folder else self._vault_path

    def _ensure_folder(self) -> Path:
        current = self._vault_path
        for part in Path(self._folder).parts if self._folder else ():
            current = current / part
            if current.exists() and not current.is_dir():
                raise NoteWriteError(f"{current} exists but is not a folder")
            try:
                current.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise NoteWriteError(f"Could not create folder {current}: {e}") from e
        return self.folder_path

    def note_path_for(self, messages: Sequence["ChatMessage"]) -> Path:
        """Path the conversation would be saved to."""
        return self.folder_path / f"{note_title(messages)}.md"

    def save(
        self,
        messages: Sequence["ChatMessage"],
        assistant_name: str,
        conversation_id: str,
        path: Path | None = None,
        saved_at: datetime | None = None,
    ) -> Path:
        """Save a conversation and return the note path.

        Args:
            messages: Ordered conversation messages
            assistant_name: Name shown in the note header
            conversation_id: Stable id of the conversation (section key)
            path: Note to write to; derived from the first question if None
            saved_at: Save time (defaults to now)

        Raises:
            NoteWriteError: If the vault folder cannot be created or written
        """
        saved_at = saved_at or datetime.now()
        self._ensure_folder()
        note_path = path or self.note_path_for(messages)

        start, end = _section_markers(conversation_id)
        section = f"{start}\n{format_conversation(messages, assistant_name, saved_at)}{end}"
        stamp = saved_at.isoformat(timespec="seconds")

        try:
            if note_path.exists():
                post = frontmatter.loads(note_path.read_text(encoding="utf-8"))
                pattern = re.compile(re.escape(start) + r"[\s\S]*?" + re.escape(end))
                if pattern.search(post.content):
                    post.content = pattern.sub(lambda _: section, post.content, count=1)
                    action = "Updated"
                else:
                    post.content = f"{post.content.rstrip()}\n\n{section}" if post.content.strip() else section
                    action = "Appended"
            else:
                post = frontmatter.Post(section, created=stamp)
                action = "Created"

            conversations = list(post.metadata.get("conversations") or [])
            if conversation_id not in conversations:
                conversations.append(conversation_id)
            post.metadata["assistant"] = assistant_name
            post.metadata.setdefault("created", stamp)
            post.metadata["updated"] = stamp
            post.metadata["conversations"] = conversations

            note_path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
        except OSError as e:
            raise NoteWriteError(f"Could not write {note_path}: {e}") from e

        logger.info("%s conversation note %s", action, note_path)
        return note_path
