"""
HTTP API for the bedtime story generator.
"""
