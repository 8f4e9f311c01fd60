"""Nearest-neighbor and radius-count queries over labeled cell points."""
