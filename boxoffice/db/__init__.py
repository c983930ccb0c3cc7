"""Database infrastructure — declarative Base shared by all ORM models."""
