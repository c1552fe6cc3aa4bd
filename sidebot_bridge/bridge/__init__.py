"""Plugin-facing pieces: connection registry, wire messages, state and router."""
