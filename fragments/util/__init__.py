"""Small helpers shared across the fragments client."""
