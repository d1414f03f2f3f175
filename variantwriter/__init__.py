"""VariantWriter package.

Generates alternative phrasings for dialogue content keys: resolves a path
through the sequence graph, builds context, calls the generation backend,
validates the results and archives every attempt.
"""

__all__ = [
    "conditions",
    "miniyaml",
    "config",
    "content_key",
    "sequences",
    "state",
    "resolver",
    "window",
    "exemplars",
    "templates",
    "llm",
    "validation",
    "artifacts",
    "context",
    "env",
    "utils",
]
