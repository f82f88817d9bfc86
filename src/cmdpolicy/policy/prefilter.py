"""Regex pre-filter run before tokenizing.

Layer 1: Input Pre-filter
- Reject stacked chaining operators (;;, && &&, || ||)
- Reject path traversal sequences (../ and ..\\)
- Reject control characters and Unicode homoglyphs of ASCII letters

The pre-filter only ever rejects. A command that passes it still goes
through full parsing and classification.
"""

import re

REASON_PREFILTER = "suspicious command shape"

QUICK_REJECT_PATTERNS: list[tuple[str, str]] = [
    # Stacked chaining
    (r";\s*;", "stacked ';' separators"),
    (r"(&&|\|\|)\s*(&&|\|\|)", "stacked '&&'/'||' operators"),
    (r"&&&|\|\|\|", "stacked '&&'/'||' operators"),
    # Path traversal
    (r"\.\./", "path traversal (../)"),
    (r"\.\.\\", "path traversal (..\\)"),
    # Control characters other than tab and newline
    (r"[\x00-\x08\x0b-\x1f\x7f]", "control character"),
]

_COMPILED_PATTERNS = [
    (re.compile(pattern), description) for pattern, description in QUICK_REJECT_PATTERNS
]

# Characters that look like ASCII but are not
HOMOGLYPHS: frozenset[str] = frozenset({
    "а",  # Cyrillic а
    "е",  # Cyrillic е
    "о",  # Cyrillic о
    "р",  # Cyrillic р
    "с",  # Cyrillic с
    "у",  # Cyrillic у
    "х",  # Cyrillic х
    "і",  # Cyrillic і
    "ј",  # Cyrillic ј
    "һ",  # Cyrillic һ
    "ԁ",  # Cyrillic ԁ
    "ԛ",  # Cyrillic ԛ
    "ｒ",  # Fullwidth r
    "ｍ",  # Fullwidth m
    "−",  # Minus sign (not hyphen)
    "‐",  # Hyphen
    "–",  # En dash
    "\u2014",  # Em dash
})


class PreFilter:
    """Cheap first-pass rejection of pathological command shapes."""

    def check(self, command: str) -> str | None:
        """Check a command string.

        Args:
            command: The raw command string.

        Returns:
            A description of the first rejected shape, or None if it passes.
        """
        for pattern, description in _COMPILED_PATTERNS:
            if pattern.search(command):
                return description

        found = [char for char in command if char in HOMOGLYPHS]
        if found:
            return f"homoglyph characters ({', '.join(sorted(set(found)))})"
        return None

    def rejects(self, command: str) -> bool:
        return self.check(command) is not None


def quick_reject(command: str) -> bool:
    """Return True if the command should be rejected before parsing."""
    return PreFilter().rejects(command)
