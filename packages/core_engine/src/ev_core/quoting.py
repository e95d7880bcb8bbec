"""T-SQL identifier and literal quoting shared by the connectors and the assembler."""


def quote_name(name: str) -> str:
    """Bracket-quote an identifier the way QUOTENAME does."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
