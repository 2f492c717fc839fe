"""
Finance Tracker - Core Package

The local transaction store and aggregation engine behind a personal
finance tracking app.

DESIGN PRINCIPLES:
1. The store is the single source of truth for totals
2. Totals are recomputed after every mutation, never patched
3. Any local mutation invalidates prior sync state
4. Storage backend is swappable (SQLite or in-memory)
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
