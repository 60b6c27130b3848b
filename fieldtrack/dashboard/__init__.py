"""FieldTrack - dashboard figures over movements and identities."""
