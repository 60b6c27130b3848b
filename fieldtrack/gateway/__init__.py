"""FieldTrack - HTTP gateway (request middleware)."""
