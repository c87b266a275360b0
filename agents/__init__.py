"""LLM-backed agents for document analysis and chapter writing."""
