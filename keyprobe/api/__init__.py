"""API Module

Sanic blueprint exposing batch runs and model listing.
"""
