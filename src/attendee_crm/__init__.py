"""Attendee CRM data layer: filter compilation and paginated record fetching."""

__version__ = "0.3.0"
