# App Intelligence Package
"""
Ranking, search, categorization and icon caching for an app launcher.

Components:
  - Usage Ranker: Decayed relevance score per app from launch events
  - Search Engine: Tiered fuzzy matching of a catalog against a query
  - Categorizer: Rule chain assigning each app to an ordered category
  - Icon Cache: Bounded LRU of rendered icons, populated off-thread
"""

__version__ = "0.1.0-dev"
