"""Theme definitions for the TUI.

This module hides the design decisions about:
- Color palettes and visual appearance
- Theme variables (borders, scrollbars, etc.)

To add a new theme, define it here and register in the app.
"""

from textual.theme import Theme

# Dark theme built on a Nord-like palette
VAULT_NIGHT = Theme(
    name="vault-night",
    primary="#88c0d0",      # Frost - main accent
    secondary="#b48ead",    # Aurora purple - assistant replies
    accent="#ebcb8b",       # Aurora yellow - highlights
    foreground="#e5e9f0",
    background="#1f232b",
    success="#a3be8c",      # User messages, connected status
    warning="#d08770",
    error="#bf616a",
    surface="#2e3440",
    panel="#272c36",
    dark=True,
    variables={
        "block-cursor-foreground": "#1f232b",
        "block-cursor-background": "#d8dee9",
        "block-cursor-text-style": "bold",
        "input-cursor-background": "#e5e9f0",
        "input-cursor-foreground": "#1f232b",
        "input-selection-background": "#88c0d0 30%",
        "border": "#4c566a",
        "border-blurred": "#3b4252",
        "scrollbar": "#3b4252",
        "scrollbar-hover": "#4c566a",
        "scrollbar-active": "#88c0d0",
        "scrollbar-background": "#272c36",
        "footer-key-foreground": "#ebcb8b",
        "footer-key-background": "#3b4252",
        "text-muted": "#7b88a1",
        "link-color": "#88c0d0",
        "link-style": "underline",
    },
)
