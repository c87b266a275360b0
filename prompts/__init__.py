"""Jinja2 prompt templates rendered by ``prompt_renderer``."""
