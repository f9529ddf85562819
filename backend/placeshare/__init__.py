"""
PlaceShare Backend: Application Package
========================================

Layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (ConsistencyManager,     │  ← multi-document mutations,
    │   PlaceService, AccountService)     │    queries, accounts
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   DocumentStore (Persistence)       │  ← one transaction per operation
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
