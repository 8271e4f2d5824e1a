"""Schemas of the tools the completion model may be offered.

Schemas use the Anthropic Messages API tool format
(``name``, ``description``, ``input_schema``). Which of them are offered on
a given turn is decided solely by that turn's allow-list.
"""

from typing import Any

TOOL_SCHEMAS: dict[str, dict[str, Any]] = {
    "drive_search_files": {
        "name": "drive_search_files",
        "description": "Search for files in Google Drive by name or content",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "limit": {"type": "number", "description": "Maximum number of results"},
            },
            "required": ["query"],
        },
    },
    "drive_read_file": {
        "name": "drive_read_file",
        "description": "Read the content of a file from Google Drive",
        "input_schema": {
            "type": "object",
            "properties": {
                "file_id": {"type": "string", "description": "Google Drive file ID"},
            },
            "required": ["file_id"],
        },
    },
    "gmail_send_email": {
        "name": "gmail_send_email",
        "description": "Send an email via Gmail",
        "input_schema": {
            "type": "object",
            "properties": {
                "to": {"type": "string", "description": "Recipient email address"},
                "subject": {"type": "string", "description": "Email subject"},
                "body": {"type": "string", "description": "Email body"},
            },
            "required": ["to", "subject", "body"],
        },
    },
    "gmail_list_messages": {
        "name": "gmail_list_messages",
        "description": "List recent Gmail messages",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Gmail search query"},
                "limit": {"type": "number", "description": "Maximum number of messages"},
            },
            "required": [],
        },
    },
    "calendar_create_event": {
        "name": "calendar_create_event",
        "description": "Create a new calendar event",
        "input_schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Event title"},
                "start": {"type": "string", "description": "Start time (ISO format)"},
                "end": {"type": "string", "description": "End time (ISO format)"},
                "attendees": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Attendee email addresses",
                },
            },
            "required": ["title", "start", "end"],
        },
    },
    "calendar_list_events": {
        "name": "calendar_list_events",
        "description": "List upcoming calendar events",
        "input_schema": {
            "type": "object",
            "properties": {
                "time_min": {"type": "string", "description": "Earliest start time (ISO format)"},
                "limit": {"type": "number", "description": "Maximum number of events"},
            },
            "required": [],
        },
    },
}


def known_tool_names() -> list[str]:
    return list(TOOL_SCHEMAS)


def schemas_for(allow_list: list[str]) -> list[dict[str, Any]]:
    """Return schemas for the allowed tools, in allow-list order.

    Unknown names and duplicates are skipped. An empty allow-list offers
    no tools.
    """
    schemas = []
    seen: set[str] = set()
    for name in allow_list:
        if name in TOOL_SCHEMAS and name not in seen:
            schemas.append(TOOL_SCHEMAS[name])
            seen.add(name)
    return schemas


def describe_tools() -> list[dict[str, str]]:
    """Name/description pairs for the tool picker."""
    return [
        {"name": name, "description": schema["description"]}
        for name, schema in TOOL_SCHEMAS.items()
    ]
