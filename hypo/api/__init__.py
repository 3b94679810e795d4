"""
API module - FastAPI application, routes and service wiring.
"""
