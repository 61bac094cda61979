"""Embedded built-in preset catalogue."""
