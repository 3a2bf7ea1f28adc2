"""Truck availability, as seen by the trip lifecycle."""
