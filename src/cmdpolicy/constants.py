"""Shared constants for cmdpolicy."""

# AST nesting cap; exceeding it is treated like a parse failure
DEFAULT_MAX_DEPTH = 24
MAX_DEPTH_LIMIT = 32

# Command previews in log events and CLI output
COMMAND_PREVIEW_LENGTH = 120


def truncate(text: str, max_length: int = COMMAND_PREVIEW_LENGTH) -> str:
    """Truncate text with ellipsis if it exceeds max_length."""
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text
