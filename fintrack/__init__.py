"""
Personal Finance Tracker - Source Package

A session-scoped finance tracker: transactions, investments, a monthly
summary, a savings reservation and an AI assistant ("RoboFin").

DESIGN PRINCIPLES:
1. AI proposes → Human confirms → Store commits
2. Local state first, remote write second, rollback on failure
3. No remote failure ever reaches the UI as an exception
4. Every mutation outcome is audited
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Finance Tracker Team"
