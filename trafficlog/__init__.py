"""Network traffic accounting: kernel counters, SQLite history, summaries, exports and reports."""

__version__ = "0.1.76"