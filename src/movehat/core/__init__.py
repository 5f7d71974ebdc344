"""Project-level helpers: deployment records and the Move CLI wrapper."""
