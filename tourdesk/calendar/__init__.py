"""Calendar preferences, availability aggregation and view projection.

Submodules are imported directly (``tourdesk.calendar.projection``); the
backend client depends on the cache and day convention modules here.
"""
