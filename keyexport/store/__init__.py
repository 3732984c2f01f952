"""Local record storage."""
