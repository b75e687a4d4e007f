"""Pydantic models for messages, JSON-RPC payloads, configuration and errors."""
