"""Textual CSS for the chat app.

Layout: toolbar on top, chat history filling the middle, optional log
panel below it, input bar at the bottom.
"""

APP_CSS = """
Screen {
    layout: vertical;
    background: $background;
}

/* ============================================
   Toolbar - Assistant Selector + Status
   ============================================ */
#toolbar {
    height: auto;
    padding: 0 1;
    background: $panel;
    border-bottom: solid $border;
}

#assistant-select {
    width: 40;
}

#status {
    width: 1fr;
    height: 3;
    content-align: left middle;
    padding: 0 2;
}

#save-note-btn {
    min-width: 10;
}

/* ============================================
   Chat History Panel
   ============================================ */
#chat-history {
    height: 1fr;
    background: $panel;
    border: round $primary 60%;
    border-title-color: $primary;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;

    &:focus-within {
        border: round $primary;
    }
}

/* ============================================
   Log Panel
   ============================================ */
#debug-panel {
    height: 12;
    background: $panel;
    border: round $warning 60%;
    border-title-color: $warning;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;
}

/* ============================================
   Question Box
   ============================================ */
ChatInputBar {
    height: 5;
    border: round $primary 60%;
    background: $panel;

    &:focus-within {
        border: round $primary;
    }
}

#chat-input {
    width: 1fr;
    height: 100%;
    border: none;
    padding: 0 1;
    background: transparent;
}

#send-btn {
    width: 10;
    height: 100%;
    margin: 0 0 0 1;
    border: tall $success;
    background: $success;
    color: $background;
    text-style: bold;

    &:disabled {
        background: $surface;
        border: tall $border;
        color: $text-muted;
    }
}

/* ============================================
   Chat Messages
   ============================================ */
.chat-message {
    width: 100%;
    height: auto;
    margin: 0 0 1 0;
    padding: 1 2;
}

.user-message {
    border-left: tall $success;
    background: $success 8%;

    & .message-header {
        color: $success;
        text-style: bold;
    }
}

.assistant-message {
    border-left: tall $secondary;
    background: $secondary 8%;

    & .message-header {
        color: $secondary;
        text-style: bold;
    }

    &.temporary {
        border-left: tall $text-muted;
        background: transparent;
        color: $text-muted;
    }

    &.incomplete {
        border-left: tall $warning;
    }

    &.error {
        border-left: tall $error;
        background: $error 10%;
    }
}

.message-header, .message-content, .message-references {
    height: auto;
    margin: 0;
    padding: 0;
}

.message-references {
    margin-top: 1;
    color: $text-muted;
}

Markdown {
    margin: 0;
    padding: 0;
}

MarkdownBlockQuote {
    border-left: wide $primary;
    background: $primary 8%;
    padding: 0 1;
}

/* ============================================
   Header / Footer
   ============================================ */
Header {
    background: $panel;
    height: 1;
}

HeaderTitle {
    color: $primary;
    text-style: bold;
}

Footer {
    background: $panel;
}

Toast {
    background: $surface;
    border: tall $border;
    padding: 0 1;

    &.-error {
        border: tall $error;
    }

    &.-warning {
        border: tall $warning;
    }
}
"""
