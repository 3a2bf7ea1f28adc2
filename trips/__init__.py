"""
Freight trip lifecycle package.

The package is organized into:
- api/: API endpoint handlers
- services/: State machine, transition rules and profitability math
- models.py: Request and result models
"""
