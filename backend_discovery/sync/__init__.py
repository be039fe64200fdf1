"""Diffing desired against current state and applying the resulting actions."""
