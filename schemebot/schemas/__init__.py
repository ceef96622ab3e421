"""Pydantic schemas shared across components."""
