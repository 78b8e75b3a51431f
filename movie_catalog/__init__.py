"""Movie catalog REST API."""
