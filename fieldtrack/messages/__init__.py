"""FieldTrack - identity-to-identity messaging."""
