"""News article model and article collaborators."""
