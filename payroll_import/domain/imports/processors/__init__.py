"""File readers that turn uploaded bytes into headers and raw rows."""
