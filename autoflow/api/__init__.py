"""API route modules."""
from autoflow.api import audit_log, credentials, executions, file_uploads, node_types, webhooks, workflows

__all__ = ["audit_log", "credentials", "executions", "file_uploads", "node_types", "webhooks", "workflows"]
