"""FieldTrack - identity administration."""
