"""Conversation engine, stream decoding and configuration constants."""
