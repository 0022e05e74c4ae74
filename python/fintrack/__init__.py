"""FinTrack API host."""
