"""Shared helpers: subprocess execution, logging setup and console interaction."""
