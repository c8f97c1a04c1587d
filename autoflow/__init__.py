"""autoflow: workflow automation backend with an n8n-compatible execution engine."""

__version__ = "0.1.0"
