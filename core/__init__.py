"""Core services: provider gateway, usage tracking and extraction caching."""
