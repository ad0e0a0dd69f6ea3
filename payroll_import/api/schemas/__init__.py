"""Pydantic models shared by the pipeline and the API."""
