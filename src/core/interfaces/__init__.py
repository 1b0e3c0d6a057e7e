"""Core interfaces/abstractions.

Contracts (Protocol) implemented by the concrete adapters, so the core
depends on abstractions and can be exercised with fakes.
"""
