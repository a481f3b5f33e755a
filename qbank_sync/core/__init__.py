"""Core types, access checks and category handling."""
