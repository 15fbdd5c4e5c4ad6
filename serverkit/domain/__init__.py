"""Domain layer facade for serverkit.

This package groups the pure configuration models and the variant registry
that do not concern infrastructure or interface details.
"""

from . import capabilities, models, variants

__all__ = ["capabilities", "models", "variants"]
