"""Workflow editing, validation and inspection."""
from autoflow.workflow.operations import apply_operations, get_unique_node_name
from autoflow.workflow.printer import print_run_data, print_workflow

__all__ = ["apply_operations", "get_unique_node_name", "print_run_data", "print_workflow"]
