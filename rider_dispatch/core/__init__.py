"""
Core package for shared utilities.

Configuration, structured logging and token handling used across the
backend application.
"""
