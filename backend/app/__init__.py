"""
Mailroom Backend — Application Package Initializer
====================================================

What: Marks the `app` directory as a Python package.
Why:  Enables module imports like `from app.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend keeps a layered layout:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, envelopes
    ├─────────────────────────────────────┤
    │   Services (Business Logic)         │  ← validation, attachment lifecycle, auth
    ├─────────────────────────────────────┤
    │   Repository + Attachment Store     │  ← unique-key persistence, files on disk
    ├─────────────────────────────────────┤
    │   Models & Schemas (Data)           │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘

    Routes never touch the database or the filesystem directly; services
    are built once in `create_app()` and handed to routes through
    FastAPI dependencies.
"""

__version__ = "1.0.0"
