"""Web surface for the title bot."""
