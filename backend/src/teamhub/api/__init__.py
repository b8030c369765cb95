"""HTTP API for TeamHub."""
