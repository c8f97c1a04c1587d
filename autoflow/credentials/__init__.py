"""Credentials: types, storage and synchronization."""
from autoflow.credentials.service import CredentialsService
from autoflow.credentials.sync import (
    are_same_credentials,
    get_credential_synchable_data,
    merge_remote_credential_data,
)
from autoflow.credentials.types import CREDENTIAL_TYPES, authenticate, get_credential_type

__all__ = [
    "CREDENTIAL_TYPES",
    "CredentialsService",
    "are_same_credentials",
    "authenticate",
    "get_credential_synchable_data",
    "get_credential_type",
    "merge_remote_credential_data",
]
