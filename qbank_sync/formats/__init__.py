"""Question file formats."""
