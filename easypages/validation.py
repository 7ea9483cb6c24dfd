"""Input validators for project and domain names."""

from __future__ import annotations

from easypages import config
from easypages.errors import ValidationError


def is_valid_project_name(name: str | None) -> bool:
    """Check a Pages project name: lowercase alphanumerics and hyphens only."""
    return bool(name) and bool(config.PROJECT_NAME_PATTERN.fullmatch(name))


def is_valid_domain_name(name: str | None) -> bool:
    """Check a custom domain name: letters, digits, dots, hyphens, no empty labels."""
    return bool(name) and bool(config.DOMAIN_NAME_PATTERN.fullmatch(name)) and ".." not in name


def validate_project_name(name: str | None) -> str:
    """Validate a project name.

    Args:
        name: Proposed project name.

    Returns:
        The name, unchanged.

    Raises:
        ValidationError: Name is empty or has disallowed characters.
    """
    if not is_valid_project_name(name):
        raise ValidationError("Invalid project name")
    return name


def validate_domain_name(name: str | None) -> str:
    """Validate a custom domain name.

    Raises:
        ValidationError: Name is empty, has disallowed characters or "..".
    """
    if not is_valid_domain_name(name):
        raise ValidationError("Invalid domain name")
    return name
