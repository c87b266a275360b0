"""Composition root and command-line runner."""
