"""Salon lead inbox: lead routing and assignment backend."""

__version__ = "1.0.0"
