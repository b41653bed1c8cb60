"""Migration plan inspector: normalizes controller logs and Plan YAML into one entity model."""

__version__ = "0.1.0"
