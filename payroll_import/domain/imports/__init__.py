"""
Import pipeline stages.

Parser -> ColumnMapper -> Normalizer -> Validator -> Deduplicator -> BatchImporter,
tied together by the session state machine in ``pipeline``.
"""
