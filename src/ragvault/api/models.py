from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Reference(BaseModel):
    """A retrieved chunk cited by an assistant answer."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default="", description="Chunk identifier")
    document_id: str = Field(default="", description="Source document identifier")
    document_name: str = Field(default="", description="Source document name")
    content: str = Field(default="", description="Retrieved chunk text")
    dataset_id: str = Field(default="", description="Dataset (knowledge base) identifier")


class ChatAssistant(BaseModel):
    """A RAGFlow chat assistant bound to one or more datasets."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = "Unnamed Assistant"


class Dataset(BaseModel):
    """A RAGFlow dataset (knowledge base)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = "Unnamed Dataset"


class SessionMessage(BaseModel):
    """A message stored in a server-side chat session."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(default="assistant", description="'user', 'assistant' or 'system'")
    content: str = ""
    references: list[Reference] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionMessage":
        """Build from a RAGFlow message object (references under ``reference``)."""
        raw_refs = payload.get("reference") or []
        if isinstance(raw_refs, dict):
            raw_refs = raw_refs.get("chunks") or []
        return cls(
            role=payload.get("role") or "assistant",
            content=payload.get("content") or "",
            references=[Reference(**ref) for ref in raw_refs if isinstance(ref, dict)],
        )


class ChatSession(BaseModel):
    """A server-side chat session."""

    id: str
    name: str = ""
    messages: list[SessionMessage] = Field(default_factory=list)


class StreamResult(BaseModel):
    """Outcome of a completion decode run."""

    model_config = ConfigDict(frozen=True)

    answer: str = Field(description="Full concatenated answer text")
    references: list[Reference] = Field(default_factory=list)
    session_id: str = Field(default="", description="Empty for the session-less transport")
