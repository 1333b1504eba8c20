"""
Infrastructure: database, locks, Redis, realtime broadcasting
"""
