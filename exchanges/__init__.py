"""
Upstream Connectors Package

Each market data provider has its own subfolder with an api_client.py that
performs the HTTP calls and raises core.errors.UpstreamError on failure.

Services depend only on the client's fetch_price / fetch_klines coroutines,
so another provider can be dropped in without touching the fallback logic.
"""
