"""Project directory and participant data sources."""
