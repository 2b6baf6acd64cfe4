"""
Surety Core - shared infrastructure for FlightSurety services.

- settings: environment-driven configuration
- logging: process-wide logging setup
- db: lazily created SQLAlchemy engine and sessions
- redis: lazily created Redis client and Streams helpers

Contains no ledger rules; those live in surety_engine.
"""
