"""Exceptions raised by the relay core."""


class MalformedInputError(ValueError):
    """A caller-supplied value (URL, referrer) could not be parsed."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"Malformed {field}: {value!r}")
        self.field = field
        self.value = value
