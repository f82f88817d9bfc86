"""Exception types for the command policy engine.

None of these cross the public ``classify``/``decide``/``explain`` API:
``CommandPolicy`` converts them into Blocked verdicts.
"""


class PolicyError(Exception):
    """Base class for command policy errors."""

    pass


class ParseError(PolicyError):
    """Raised when a command uses syntax outside the supported shell subset.

    Attributes:
        message: Short description of the problem.
        position: Offset into the source string, if known.
    """

    def __init__(self, message: str, position: int | None = None):
        self.message = message
        self.position = position
        if position is None:
            super().__init__(message)
        else:
            super().__init__(f"{message} (at offset {position})")


class RecursionLimitExceeded(ParseError):
    """Raised when nesting exceeds the configured AST depth cap."""

    def __init__(self, limit: int, position: int | None = None):
        self.limit = limit
        super().__init__(f"nesting deeper than {limit} levels", position)


class PolicyConfigError(PolicyError):
    """Raised when a policy file contains invalid values."""

    pass
