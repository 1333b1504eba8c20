"""
Core: configuration, errors, logging
"""
