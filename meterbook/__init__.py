"""Meterbook - meter reading approval and billing service."""

__version__ = "0.1.0"
