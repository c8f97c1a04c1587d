"""Binary data storage for items and file uploads."""
from autoflow.binary_data.service import BinaryDataService, binary_entry, format_file_size

__all__ = ["BinaryDataService", "binary_entry", "format_file_size"]
