"""
MasterMinds Backend — Application Package Initializer
=====================================================

What: Marks the `masterminds` directory as a Python package.
Who:  Imported by uvicorn (`masterminds.main:app`), Alembic and pytest.

Architecture Note:
    The backend follows the same layered split for every endpoint family:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Auth dependencies & rate limits   │  ← identity, roles, ownership
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← auth + application workflows
    ├─────────────────────────────────────┤
    │       Schemas & Validation (API)    │  ← Pydantic contracts
    ├─────────────────────────────────────┤
    │   Storage Adapter (Persistence)     │  ← SQL or in-memory backend
    └─────────────────────────────────────┘
"""

__version__ = "2.0.0"
