"""
Aletheia - discovery and live verification of leaked AI-provider API keys.
"""
from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
