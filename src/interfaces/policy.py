from enum import Enum


class FailurePolicy(str, Enum):
    """What a component reports when its backing infrastructure is unreachable."""

    fail_open = "fail_open"
    fail_closed = "fail_closed"

    @classmethod
    def parse(cls, value: str | None) -> "FailurePolicy":
        if not value:
            return cls.fail_open
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.fail_open
