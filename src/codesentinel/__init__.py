"""CodeSentinel - Autonomous multi-phase code review orchestration.

This package drives an external analysis provider through a fixed sequence
of review phases, accumulates the structured findings it reports into a
persistent review session, and exposes that session to a dashboard API and
a command-line interface.
"""

__version__ = "0.1.0"
