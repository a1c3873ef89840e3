"""Warehouse schema: SQLAlchemy table definitions and the DDL script."""
