"""Song-of-the-day matching engine."""
