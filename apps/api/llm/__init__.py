"""Generative diagnosis provider package."""
