"""
Route templates package.

Reusable origin/destination routes and the aggregate profitability figures
derived from the trips bound to them.
"""
