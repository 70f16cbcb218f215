"""Authorization, invitation and membership services."""
