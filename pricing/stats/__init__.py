"""
Robust price statistics
"""
