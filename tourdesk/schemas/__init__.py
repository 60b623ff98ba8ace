"""Pydantic schemas for bookings, availability and calendar projections."""
