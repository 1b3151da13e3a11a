"""
Persistence layer.
"""
