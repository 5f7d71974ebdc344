"""movehat command-line interface."""
