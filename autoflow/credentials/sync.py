"""Helpers for exporting and importing credentials between instances.

Only non-secret values travel: expressions (strings starting with ``=``) and
numbers. Plain strings, booleans and nulls are treated as secrets or local
settings and stay on the instance that owns them.
"""
from typing import Any, Optional

from autoflow.engine.expressions import is_expression
from autoflow.models.credential import Credential

EXCLUDED_KEYS = {"oauthTokenData"}


def _sanitize(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key in EXCLUDED_KEYS:
                continue
            sanitized = _sanitize(item)
            if sanitized is not None:
                result[key] = sanitized
        return result
    if isinstance(value, list):
        # Arrays become index keyed objects
        return _sanitize({str(index): item for index, item in enumerate(value)})
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if is_expression(value):
        return value
    return None


def get_credential_synchable_data(data: Optional[dict]) -> dict:
    """Keep the parts of credential data that can be shared."""
    return _sanitize(data or {})


def merge_remote_credential_data(local: Optional[dict], remote: Optional[dict]) -> dict:
    """Overlay the synchable part of ``remote`` onto ``local``.

    Local secrets that the remote omits are preserved.
    """
    merged = dict(local or {})
    for key, value in get_credential_synchable_data(remote).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_remote_credential_data(merged[key], value)
        else:
            merged[key] = value
    return merged


def are_same_credentials(first: Credential, second: Credential) -> bool:
    """Compare two credentials ignoring values that are never synchronized."""
    if (first.name, first.type, first.owned_by, first.is_global) != (
        second.name,
        second.type,
        second.owned_by,
        second.is_global,
    ):
        return False
    if first.data is None or second.data is None:
        return first.data is None and second.data is None
    return get_credential_synchable_data(first.data) == get_credential_synchable_data(second.data)
