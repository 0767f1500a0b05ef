"""CRUD classes and module-level singletons for every ORM model."""
