"""
Background processes
"""
