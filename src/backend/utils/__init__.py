"""Logging, metrics, HTTP client factory and content filtering."""
