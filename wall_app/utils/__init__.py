"""Shared helpers for the wall application back end."""
