"""Pydantic request/response models and ORM models."""
