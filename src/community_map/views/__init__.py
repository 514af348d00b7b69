"""HTML rendering of the community map."""
