"""Truck services module."""
