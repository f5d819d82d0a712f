"""
Solar telemetry rollup package.

Polls the inverter vendor cloud for instantaneous power and cumulative energy
counters, stores raw samples, and maintains hour/day/month/year buckets that
back bounded range queries for dashboards. A separate backfill path imports
historical interval data into the same bucket hierarchy.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""
