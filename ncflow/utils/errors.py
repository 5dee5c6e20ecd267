"""
Custom exception types for the ncflow interpreter and optimizer.
Only contract violations raise; malformed program content becomes warnings.
"""


class UnknownControllerError(ValueError):
    """Controller identifier outside the accepted set."""

    def __init__(self, message: str):
        self.original_message = message
        super().__init__(f"Unknown controller: {message}")

    def __str__(self):
        return f"Unknown controller: {self.original_message}"


class EmptyProgramError(ValueError):
    """Program text is missing or holds no blocks."""

    def __init__(self, message: str = "program text is empty"):
        self.original_message = message
        super().__init__(f"Empty program: {message}")

    def __str__(self):
        return f"Empty program: {self.original_message}"


class OptionsError(ValueError):
    """Optimization options combine flags that cannot apply together."""

    def __init__(self, message: str):
        self.original_message = message
        super().__init__(f"Invalid options: {message}")

    def __str__(self):
        return f"Invalid options: {self.original_message}"
