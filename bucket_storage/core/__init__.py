"""
Core storage logic.

This package is framework-agnostic: it doesn't import FastAPI or boto3.
Backends are reached only through the ObjectBackend protocol, so the
logic can be tested against the in-memory backend.
"""
