"""Pydantic schemas for AG Suite API requests and responses."""
