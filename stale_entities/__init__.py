"""
Stale entity reconciliation for data-import jobs.

Tracks which keys an import job produced, queues the ones that disappear from
the upstream source, and hands them to consumers in batches.
"""

__version__ = "0.1.0"
