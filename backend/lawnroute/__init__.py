"""
LawnRoute API
Route assignment and progress tracking for lawn-care crews
"""

__version__ = "0.1.0"
