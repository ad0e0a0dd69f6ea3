"""Persistence layer: engine/session wiring and the record store."""
