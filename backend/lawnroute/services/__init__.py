"""
Services Module
Routing, prioritization, crew assignment and progress tracking
"""
