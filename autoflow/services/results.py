"""Reading results out of run data."""
import json
from typing import Literal, Optional

from autoflow.models import MAIN, Item, RunExecutionData

ResponseMode = Literal["lastNode", "responseNodes"]


def get_last_node_output(run_data: RunExecutionData) -> Optional[list[Optional[list[Item]]]]:
    """Outputs of the last run of the last executed node."""
    last_node = run_data.result_data.last_node_executed
    if not isinstance(last_node, str):
        return None
    tasks = run_data.result_data.run_data.get(last_node)
    if not tasks:
        return None
    return tasks[-1].data.get(MAIN) or []


def get_first_output_entry(outputs: list[Optional[list[Item]]]) -> Optional[Item]:
    """First item of the first non-empty output branch."""
    for branch in outputs:
        if isinstance(branch, list) and branch:
            return branch[0]
    return None


def extract_message_from_entry(entry: Item, response_mode: ResponseMode) -> Optional[str]:
    if response_mode == "responseNodes":
        send_message = entry.get("sendMessage")
        return send_message if isinstance(send_message, str) else ""

    if response_mode == "lastNode":
        response = entry.get("json") or {}
        message = next(
            (response[key] for key in ("output", "text", "message") if response.get(key) is not None),
            "",
        )
        if isinstance(message, str):
            return message
        return json.dumps(message, default=str)

    return None


def get_message_from_run_data(run_data: RunExecutionData, response_mode: ResponseMode = "lastNode") -> Optional[str]:
    outputs = get_last_node_output(run_data)
    if not outputs:
        return None
    entry = get_first_output_entry(outputs)
    if entry is None:
        return None
    return extract_message_from_entry(entry, response_mode)


def get_error_message(run_data: RunExecutionData) -> Optional[str]:
    error = run_data.result_data.error
    if not error:
        return None
    return error.get("description") or error.get("message")


def get_output_items(run_data: RunExecutionData) -> list[Item]:
    """Items of every branch of the last node's last run, in branch order."""
    items: list[Item] = []
    for branch in get_last_node_output(run_data) or []:
        items.extend(branch or [])
    return items
