"""WebSocket broadcast relay: every message a client sends goes to all other clients."""
