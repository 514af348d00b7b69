"""Map engine services and the community API client."""
