"""FastAPI application: routes, services, middleware and WebSocket handling."""
