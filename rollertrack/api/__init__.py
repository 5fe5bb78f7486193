"""HTTP routes (Flask blueprint)."""
