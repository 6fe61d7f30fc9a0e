"""
Doctoral records archival pipeline.

Moves aged enrollment and defense records out of the live tables into
encrypted, compressed bundles with a tamper-evident audit trail.
"""

__version__ = "1.0.0"
