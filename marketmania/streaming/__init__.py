"""
Room broadcast gateway and clients.
"""
