"""Compatibility scoring, discovery pools, swipes and matches."""
