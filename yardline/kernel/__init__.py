"""Kernel primitives shared across Yardline (errors, time, text)."""

