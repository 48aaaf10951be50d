"""PagePace: reading session timing, progress tracking and reading analytics."""

__version__ = "0.1.0"
