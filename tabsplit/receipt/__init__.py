"""Pure receipt parsing and file-preparation helpers."""
