"""LexiDeck: turns a word list into an Anki deck with translations and audio."""

__version__ = "0.1.0"
