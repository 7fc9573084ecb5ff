"""
Deferred Commit - Source Package

Delete-with-undo coordination for a personal finance tracker.

DESIGN PRINCIPLES:
1. Delete optimistically → Offer undo → Commit when the grace period ends
2. At most one pending deletion per session
3. Stale timers and completions never win a race
4. Failures are surfaced, never swallowed
5. Persistence is injected, never owned
"""

__version__ = "1.0.0"
__author__ = "Personal Accountant Team"
