"""Route template services module."""
