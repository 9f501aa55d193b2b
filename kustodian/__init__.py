"""
.. include:: ../README.md
"""

__all__ = [
    "manifest",
    "graph",
    "substitution",
    "enablement",
    "generator",
    "flux",
    "namespace",
    "hooks",
    "plugins",
    "loader",
    "output",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
