"""HTTP and WebSocket surface for the build supervisor."""
