"""
Services Package

Request orchestration on top of the cache and the upstream client:
- price_service: GET /price
- history_service: GET /history (state machine + mock variant)
"""
