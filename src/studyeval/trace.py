"""Reconstruct tool invocations from a serialized agent session.

Sessions are arbitrary JSON trees. Tool calls and their results show up as
objects tagged with a ``$type`` discriminator and correlated by ``callId``:

    {"$type": "functionCall", "callId": "c1", "name": "search", "arguments": {...}}
    {"$type": "functionResult", "callId": "c1", "result": {...}}

They can sit at any depth, so the whole tree is walked.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from studyeval.models import InvokedTool

TYPE_KEY = "$type"
CALL_TYPE = "functioncall"
RESULT_TYPE = "functionresult"

_MISSING = object()


def _as_tree(record: Any) -> Any:
    if isinstance(record, (bytes, bytearray)):
        record = record.decode("utf-8")
    if isinstance(record, str):
        try:
            return json.loads(record)
        except json.JSONDecodeError:
            return record
    to_dict = getattr(record, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return record


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


class _TraceVisitor:
    """Depth-first walk collecting call and result nodes."""

    def __init__(self) -> None:
        self.order: List[str] = []
        self.calls: Dict[str, Tuple[str, Any]] = {}
        self.results: Dict[str, Any] = {}

    def visit(self, node: Any) -> None:
        if isinstance(node, dict):
            self._visit_object(node)
        elif isinstance(node, list):
            for item in node:
                self.visit(item)

    def _visit_object(self, node: Dict[str, Any]) -> None:
        for value in node.values():
            self.visit(value)

        node_type = node.get(TYPE_KEY)
        if not isinstance(node_type, str):
            return
        call_id = _text(node.get("callId"))
        if call_id is None:
            return
        key = call_id.lower()

        if node_type.lower() == CALL_TYPE:
            name = _text(node.get("name"))
            if name is None:
                return
            if key not in self.calls:
                self.order.append(key)
            self.calls[key] = (name, node.get("arguments", _MISSING))
        elif node_type.lower() == RESULT_TYPE and "result" in node:
            self.results[key] = node["result"]


def extract_invoked_tools(record: Any) -> List[InvokedTool]:
    """Return the tool calls in ``record`` in the order they were initiated.

    ``record`` may be a decoded JSON value, a JSON string, or an object with a
    ``to_dict()`` method. Results whose call id has no matching call node are
    ignored.
    """
    visitor = _TraceVisitor()
    visitor.visit(_as_tree(record))

    tools = []
    for key in visitor.order:
        name, arguments = visitor.calls[key]
        if arguments is _MISSING or arguments is None:
            arguments = {}
        if key in visitor.results:
            tools.append(InvokedTool(
                tool=name, arguments=arguments,
                outcome=visitor.results[key], has_outcome=True,
            ))
        else:
            tools.append(InvokedTool(tool=name, arguments=arguments))
    return tools
