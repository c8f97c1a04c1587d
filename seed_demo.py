"""Seed demo: Customer Support Triage workflow.

This script builds and runs the canonical example workflow locally, without
a server:

1. Receives customer messages from a manual trigger
2. Classifies the message with a Switch node
3. Routes to the matching drafter:
   - Billing issues → Billing drafter
   - Outage reports → Outage drafter
   - Other → Clarification asker
4. Prints every node's output

Run this script to check the engine end to end.
"""

import asyncio

from autoflow.engine import WorkflowExecutor
from autoflow.models import Workflow
from autoflow.nodes import get_node_types
from autoflow.workflow import print_run_data, print_workflow

# Test cases for the workflow
TEST_CASES = [
    {
        "name": "Billing Query",
        "input": {
            "customerMessage": "I was charged twice for my subscription last month. Can you help me get a refund?"
        },
        "expected": "billing",
    },
    {
        "name": "Outage Report",
        "input": {
            "customerMessage": "The service is down! I can't access my dashboard since this morning."
        },
        "expected": "outage",
    },
    {
        "name": "Unclear Message",
        "input": {
            "customerMessage": "Help please"
        },
        "expected": "other",
    },
]


def _contains(word: str) -> dict:
    return {
        "conditions": {
            "options": {"caseSensitive": False, "typeValidation": "strict"},
            "combinator": "and",
            "conditions": [
                {
                    "leftValue": "={{ $json.customerMessage }}",
                    "rightValue": word,
                    "operator": {"type": "string", "operation": "contains"},
                }
            ],
        }
    }


def _drafter(name: str, category: str, text: str, y: float) -> dict:
    return {
        "name": name,
        "type": "n8n-nodes-base.set",
        "position": [700, y],
        "parameters": {
            "mode": "manual",
            "assignments": {
                "assignments": [
                    {"name": "category", "value": category, "type": "string"},
                    {"name": "responseText", "value": text, "type": "string"},
                ]
            },
        },
    }


def build_triage_workflow() -> Workflow:
    """The triage workflow: trigger, classifier switch and three drafters."""
    return Workflow.model_validate({
        "name": "Customer Support Triage",
        "nodes": [
            {"name": "Start", "type": "n8n-nodes-base.manualTrigger", "position": [100, 300]},
            {
                "name": "Classify",
                "type": "n8n-nodes-base.switch",
                "position": [400, 300],
                "parameters": {
                    "mode": "rules",
                    "rules": {"values": [_contains("charged"), _contains("down")]},
                    "options": {"fallbackOutput": "extra"},
                },
            },
            _drafter(
                "Billing Drafter",
                "billing",
                "=Sorry about the billing trouble. We are looking into: {{ $json.customerMessage }}",
                100,
            ),
            _drafter("Outage Drafter", "outage", "We are aware of the outage and working on a fix.", 300),
            _drafter("Clarification", "other", "Could you tell us a bit more about the problem?", 500),
        ],
        "connections": {
            "Start": {"main": [[{"node": "Classify", "type": "main", "index": 0}]]},
            "Classify": {
                "main": [
                    [{"node": "Billing Drafter", "type": "main", "index": 0}],
                    [{"node": "Outage Drafter", "type": "main", "index": 0}],
                    [{"node": "Clarification", "type": "main", "index": 0}],
                ]
            },
        },
    })


async def run_seed_demo():
    """Run every test case through the triage workflow."""

    print("=" * 60)
    print("autoflow - Seed Demo")
    print("Customer Support Triage Workflow")
    print("=" * 60)
    print()

    workflow = build_triage_workflow()
    print(print_workflow(workflow, include_params=False))
    print()

    executor = WorkflowExecutor(get_node_types())
    passed = 0
    for case in TEST_CASES:
        print(f"🔄 {case['name']}")
        print("-" * 40)
        run_data = await executor.run(workflow, trigger_items=[{"json": case["input"]}])
        print(print_run_data(run_data))

        last = run_data.result_data.last_node_executed
        output = run_data.result_data.run_data[last][-1].data["main"][0]
        category = output[0]["json"].get("category") if output else None
        ok = category == case["expected"]
        passed += ok
        print(f"{'✅' if ok else '❌'} category={category} (expected {case['expected']})")
        print()

    print("=" * 60)
    print(f"Seed demo finished: {passed}/{len(TEST_CASES)} cases routed as expected")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(run_seed_demo())
