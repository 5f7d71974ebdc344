"""movehat — developer tooling for Move projects on Movement/Aptos networks."""

__version__ = "0.1.0"
