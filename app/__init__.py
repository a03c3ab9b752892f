"""
FastAPI Application Package

Entry point for the HTTP API: /health, /price and /history.
"""
