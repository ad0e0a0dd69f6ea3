"""Domain logic for the import flows."""
