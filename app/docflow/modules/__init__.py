"""
Feature modules live under this package.

Each module owns its routes and domain logic, while reusing platform
primitives (auth, RBAC, audit, DB session) from app.docflow.
"""
