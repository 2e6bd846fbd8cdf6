"""
Search package - Query scoring and alphabetical sectioning.

Provides the tiered fuzzy matcher used for the launcher's search view.
"""

from .engine import SearchEngine, levenshtein_distance, similarity

__all__ = ["SearchEngine", "levenshtein_distance", "similarity"]
