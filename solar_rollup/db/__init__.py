"""
Persistence layer: ORM models, session factory, and upsert helpers.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-003)
"""
