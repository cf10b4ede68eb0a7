"""One adapter per statement format; each returns a ``ParseResult``."""
