"""Authorization, membership and invitation core for Kanban boards."""
