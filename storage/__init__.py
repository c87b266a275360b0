"""Document persistence."""
