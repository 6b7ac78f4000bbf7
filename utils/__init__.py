"""Shared helpers for the relay."""
