"""
SQL identifier quoting.

Table and column names come from catalog queries and user-supplied table
filters. Any name the catalog can hold is accepted: embedded quote
characters are doubled, so the quoted form is always a single identifier.
Only names that cannot be expressed at all (empty parts, NUL characters,
more than ``schema.name``) are rejected. Values are always bound as
parameters.
"""


def _unwrap(part: str, opening: str, closing: str) -> str:
    if len(part) >= 2 and part[0] == opening and part[-1] == closing:
        return part[1:-1].replace(closing * 2, closing)
    return part


def validate_identifier(identifier: str) -> list[str]:
    """
    Split an identifier (optionally ``schema.name``) into its unquoted parts.

    Parts already wrapped in ``[...]`` or ``"..."`` are unwrapped.

    Raises:
        ValueError: Empty part, NUL character, or more than two parts
    """
    if "\x00" in identifier:
        raise ValueError(f"Invalid identifier format: {identifier!r}")

    parts = [
        _unwrap(_unwrap(part, "[", "]"), '"', '"')
        for part in identifier.split(".")
    ]
    if len(parts) > 2 or not all(parts):
        raise ValueError(f"Invalid identifier format: {identifier!r}")
    return parts


def quote_postgres_identifier(identifier: str) -> str:
    """
    Quote PostgreSQL identifier with double quotes

    >>> quote_postgres_identifier("public.order items")
    '"public"."order items"'
    """
    return ".".join(
        '"' + part.replace('"', '""') + '"' for part in validate_identifier(identifier)
    )


def quote_sqlserver_identifier(identifier: str) -> str:
    """
    Quote SQL Server identifier with brackets

    >>> quote_sqlserver_identifier("dbo.first-name")
    '[dbo].[first-name]'
    """
    return ".".join(
        "[" + part.replace("]", "]]") + "]" for part in validate_identifier(identifier)
    )


def quote_string_literal(value: str) -> str:
    """Single-quoted SQL string literal with embedded quotes doubled."""
    return "'" + value.replace("'", "''") + "'"
