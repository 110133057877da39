class ConversationError(Exception):
    """Base class for conversation controller errors."""


class SendInProgressError(ConversationError):
    """A send was attempted while another answer is still streaming."""

    def __init__(self) -> None:
        super().__init__("A message is already being sent; wait for the answer to finish")


class UnknownAssistantError(ConversationError):
    """The requested chat assistant is not in the server's list."""

    def __init__(self, assistant_id: str):
        super().__init__(f"Chat assistant with ID {assistant_id} not found")
        self.assistant_id = assistant_id
