"""
Vendor cloud telemetry source.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-004)
"""
