"""Repository full-name helpers.

GitHub identifies repositories as ``owner/name``. These are not filesystem
paths, so they are split here rather than with ``pathlib``.
"""

from __future__ import annotations


def parse_repo_full_name(full_name: str) -> tuple[str, str]:
    """Split ``owner/name`` into its two parts.

    Raises
    ------
    ValueError
        If ``full_name`` does not have exactly one separator with non-empty
        parts on both sides.

    Examples
    --------
    >>> parse_repo_full_name("org/repo")
    ('org', 'repo')

    """
    owner, sep, name = full_name.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        msg = f"Invalid repository full name: expected 'owner/name', got {full_name!r}"
        raise ValueError(msg)
    return owner, name


def is_repo_full_name(value: object) -> bool:
    """Return True when ``value`` is a well-formed ``owner/name`` string."""
    if not isinstance(value, str):
        return False
    try:
        parse_repo_full_name(value)
    except ValueError:
        return False
    return True
