"""Click commands of the ``serverkit`` script."""

from .__main__ import cli
from .check import check
from .serve import serve

__all__ = ["check", "cli", "serve"]
