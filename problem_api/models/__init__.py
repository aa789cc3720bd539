"""Pydantic models for the problems API."""
