"""Known failure signatures (versioned data table, read-only at runtime)."""

from .base import KnowledgeBase, get_default_knowledge_base, load_knowledge_base, normalize_code

__all__ = ["KnowledgeBase", "get_default_knowledge_base", "load_knowledge_base", "normalize_code"]
