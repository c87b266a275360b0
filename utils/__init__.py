# utils/__init__.py
"""General utility functions for the novel workbench."""
