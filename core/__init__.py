"""
Core Package

Provider-agnostic building blocks:
- config / logging: Settings and logger setup
- errors: Upstream failure classification and caller-facing errors
- schemas: Pydantic payload and response models
- symbols: Public symbol to upstream ticker resolution
- upstream_interface: Abstract contract the services use to reach the provider
"""
