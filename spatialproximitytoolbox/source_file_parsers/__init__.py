"""Readers for cell-level source files."""
