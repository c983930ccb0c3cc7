"""Pydantic Schemas — request/response validation for API endpoints.

Invariants:
    - Schemas validate at the system boundary (cart payloads, admin input, API responses)
    - Domain enums from core/ used for status and kind fields

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
