"""HTTP surface for the import pipeline."""
