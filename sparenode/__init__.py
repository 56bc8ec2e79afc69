"""Worker node for an edge serverless platform with emergency-aware offloading."""

__version__ = "0.1.0"