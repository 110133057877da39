"""Terminal UI module for ragvault.

Provides a Textual-based TUI for chatting with a RAGFlow assistant.

Module structure (each module hides a design decision):
- config.py: Constants and log level thresholds
- formatting.py: Display strings for messages, references and status
- widgets.py: Custom widgets (input history, message views, log panel)
- styles.py: CSS styling (layout decisions)
- themes.py: Color palette
- screens.py: Modal dialogs (settings, confirmation)
- callbacks.py: Controller and logging integration
- app.py: Application orchestration (user interaction flow)
"""

from .app import RAGVaultApp, run_textual_tui
from .callbacks import LogPanelHandler, TUIConversationEvents
from .config import LogLevel
from .widgets import ChatHistoryWidget, ChatInputBar, DebugPanel, StatusBar

__all__ = [
    "ChatHistoryWidget",
    "ChatInputBar",
    "DebugPanel",
    "LogLevel",
    "LogPanelHandler",
    "RAGVaultApp",
    "StatusBar",
    "TUIConversationEvents",
    "run_textual_tui",
]
