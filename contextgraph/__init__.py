"""
ContextGraph: graph projection of project knowledge.

Mirrors projects, bounded contexts, decisions, specs, tasks, glossary terms
and memory entries from the primary store into Neo4j for relationship
modeling, full-text search and impact analysis.
"""

__version__ = "0.1.0"
