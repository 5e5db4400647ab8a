"""Local word cache and selection engine for the word-guessing party game."""

__version__ = "0.3.0"
