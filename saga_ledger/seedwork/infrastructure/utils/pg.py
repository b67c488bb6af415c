__all__ = ('escape',)


def escape(name: str) -> str:
    """Quotes an SQL identifier (table, column or index name)."""
    return '"%s"' % name.replace('"', '""')
