"""FieldTrack - movement recording and aggregation."""
