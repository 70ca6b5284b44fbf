"""Drip-content course backend: enrollments, weekly unlocks and portal access."""

__version__ = "0.1.0"
