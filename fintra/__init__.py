"""
Fintra - Source Package

Monthly balance and savings goal engine for a personal finance tracker.

PRINCIPLES:
1. Every month is computed from the raw transactions, never cached
2. Goals are funded first-come-first-served from the leftover balance
3. Funding a month is idempotent
4. Nothing is committed in memory before it is persisted
5. Storage layer is swappable
"""

__version__ = "1.2.1"
__author__ = "Fintra Team"
