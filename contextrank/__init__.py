"""ContextRank: hybrid file relevance ranking for LLM context assembly."""

__version__ = "0.3.0"
