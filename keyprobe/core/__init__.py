"""Core Module

Provides configuration and the concurrency slot scheduler.
"""
