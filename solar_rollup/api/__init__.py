"""
FastAPI query surface.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-012)
"""
