"""
Best-effort Redis cache for the current-mode payload.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-012)
"""
