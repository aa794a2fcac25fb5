"""Pydantic models for criteria, evaluation records and rankings."""
