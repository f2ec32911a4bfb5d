def parse_env_bool(value: str | None) -> bool:
    """Parse a boolean environment variable ("true", "1" and "yes" are truthy)."""
    if not value:
        return False
    return value.strip().lower() in ("true", "1", "yes")


def parse_env_number(value: str | None, default: float) -> float:
    """Parse a numeric environment variable, falling back to the default when missing or invalid."""
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_env_list(value: str | None) -> list[str]:
    """Parse a comma-separated environment variable, dropping empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
