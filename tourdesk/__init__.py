"""Booking and availability core for property-tour management."""

__version__ = "0.1.0"
