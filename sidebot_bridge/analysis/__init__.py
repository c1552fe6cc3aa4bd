"""Claude-facing pieces: prompt catalog, model adapter and response extraction."""
