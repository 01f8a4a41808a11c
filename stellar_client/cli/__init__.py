"""Click-based command line client."""
