"""
Write-path and read-path services: ingestion, aggregation, backfill, query.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-005)
"""
