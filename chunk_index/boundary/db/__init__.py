"""Relational persistence: ORM models, connection factories and CRUD."""
