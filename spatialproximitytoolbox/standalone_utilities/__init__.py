"""Utilities without dependence on the rest of the package: logging, versioning, progress."""
