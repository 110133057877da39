"""Unit tests for the notes module."""
from datetime import datetime

import frontmatter
import pytest
from hypothesis import given
from hypothesis import strategies as st

from ragvault.api import Reference
from ragvault.conversation import ChatMessage
from ragvault.notes import (
    NoteWriteError,
    NoteWriter,
    clean_message_content,
    format_conversation,
    note_title,
)

SAVED_AT = datetime(2024, 5, 1, 9, 30, 0)


class TestCleanMessageContent:
    """Tests for RAGFlow markup cleanup."""

    def test_removes_think_blocks_and_html(self):
        """Test that reasoning blocks and tags are stripped."""
        text = "<think>internal\nreasoning</think><p>The answer</p>"
        assert clean_message_content(text) == "The answer"

    @pytest.mark.parametrize(
        "text",
        [
            "Leave is 25 days ##0$$.",
            "Leave is 25 days [1].",
            "Leave is 25 days (ref: 2).",
            "Leave is 25 days {ref: 3}.",
            "Leave is 25 days ##4.",
            "Leave is 25 days $$.",
        ],
    )
    def test_removes_citation_markers(self, text: str):
        """Test each citation marker style."""
        assert clean_message_content(text) == "Leave is 25 days."

    def test_collapses_whitespace_but_keeps_paragraphs(self):
        """Test space and blank line normalization."""
        text = "First   line\n\n\n\nSecond  line"
        assert clean_message_content(text) == "First line\n\nSecond line"

    @given(st.text(alphabet="ab .,\n\t"))
    def test_whitespace_normalized(self, text: str):
        """Property test: no double spaces, no 3+ newlines, no outer whitespace."""
        cleaned = clean_message_content(text)
        assert "  " not in cleaned
        assert "\n\n\n" not in cleaned
        assert cleaned == cleaned.strip()


class TestNoteTitle:
    """Tests for note naming."""

    def test_title_from_first_question(self):
        """Test that invalid filename characters are replaced."""
        messages = [
            ChatMessage.assistant("Welcome"),
            ChatMessage.user('What is "leave"? A/B: test'),
        ]
        assert note_title(messages) == "What is _leave__ A_B_ test"

    def test_title_truncated(self):
        """Test the 50 character limit."""
        messages = [ChatMessage.user("x" * 80)]
        assert note_title(messages) == "x" * 50

    def test_fallback_title(self):
        """Test the timestamped title when there is no user message."""
        assert note_title([ChatMessage.assistant("hi")], SAVED_AT) == (
            "RAGFlow Conversation 2024-05-01 09-30-00"
        )


class TestFormatConversation:
    """Tests for Markdown rendering."""

    def test_layout(self):
        """Test the header, roles, references and skipped placeholders."""
        reply = ChatMessage.assistant(
            "Leave is 25 days [1].",
            references=[Reference(document_name="handbook.pdf", content="<b>Employees</b> get " + "x" * 300)],
        )
        messages = [
            ChatMessage.user("How much leave?"),
            ChatMessage.assistant("Thinking...", temporary=True),
            reply,
        ]

        text = format_conversation(messages, "Handbook", SAVED_AT)

        assert text.startswith("# RAGFlow Conversation\n\n*Chat Assistant: Handbook*\n\n")
        assert "*Date: 2024-05-01 09:30:00*" in text
        assert "### **You**\n\nHow much leave?" in text
        assert "### **RAGFlow**\n\nLeave is 25 days." in text
        assert "Thinking..." not in text
        assert "- **handbook.pdf**: Employees get " in text
        assert "x" * 201 not in text

    def test_incomplete_reply_marked(self):
        """Test that interrupted replies are annotated."""
        messages = [ChatMessage.user("Q"), ChatMessage.assistant("Part", incomplete=True)]
        assert "_(incomplete response)_" in format_conversation(messages, "A", SAVED_AT)


class TestNoteWriter:
    """Tests for writing notes into the vault."""

    def test_creates_nested_folder_and_note(self, tmp_path):
        """Test first save creates folders, front matter and one section."""
        writer = NoteWriter(tmp_path, "Chats/RAGFlow")
        messages = [ChatMessage.user("Hello there"), ChatMessage.assistant("Hi!")]

        path = writer.save(messages, "Handbook", "conv-1", saved_at=SAVED_AT)

        assert path == tmp_path / "Chats" / "RAGFlow" / "Hello there.md"
        post = frontmatter.load(path)
        assert post["assistant"] == "Handbook"
        assert post["conversations"] == ["conv-1"]
        assert post["created"] == "2024-05-01T09:30:00"
        assert post.content.count("# RAGFlow Conversation") == 1

    def test_resave_replaces_section(self, tmp_path):
        """Test that saving the same conversation again does not duplicate it."""
        writer = NoteWriter(tmp_path, "Chats")
        messages = [ChatMessage.user("Hello"), ChatMessage.assistant("First answer")]
        path = writer.save(messages, "A", "conv-1", saved_at=SAVED_AT)

        messages += [ChatMessage.user("More"), ChatMessage.assistant("Second answer")]
        writer.save(messages, "A", "conv-1", path=path, saved_at=datetime(2024, 5, 1, 10, 0, 0))

        post = frontmatter.load(path)
        assert post.content.count("# RAGFlow Conversation") == 1
        assert "Second answer" in post.content
        assert post["created"] == "2024-05-01T09:30:00"
        assert post["updated"] == "2024-05-01T10:00:00"

    def test_other_conversation_appended(self, tmp_path):
        """Test that a different conversation with the same title is appended."""
        writer = NoteWriter(tmp_path, "Chats")
        writer.save([ChatMessage.user("Hello"), ChatMessage.assistant("One")], "A", "conv-1")
        path = writer.save([ChatMessage.user("Hello"), ChatMessage.assistant("Two")], "A", "conv-2")

        post = frontmatter.load(path)
        assert post.content.count("# RAGFlow Conversation") == 2
        assert post.content.index("One") < post.content.index("Two")
        assert post["conversations"] == ["conv-1", "conv-2"]

    def test_folder_component_is_a_file(self, tmp_path):
        """Test that a file in the way of the folder raises NoteWriteError."""
        (tmp_path / "Chats").write_text("not a folder")
        writer = NoteWriter(tmp_path, "Chats/RAGFlow")

        with pytest.raises(NoteWriteError):
            writer.save([ChatMessage.user("Hello")], "A", "conv-1")
