"""Database layer: declarative base, engine lifecycle, column types."""
