"""System directive and transcript construction for one chat turn.

Example:
    transcript = build_transcript(full_message, enabled_tools=["drive_search_files"])
    result = await client.complete(transcript, schemas_for(enabled_tools), model)
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TranscriptTurn:
    """One turn sent to the completion model."""

    role: str
    content: str


def build_system_directive(enabled_tools: list[str]) -> str:
    """Build the system directive for a turn.

    The listed tools are exactly the turn's allow-list, in order, or
    ``none`` when it is empty.

    Args:
        enabled_tools: Tool names enabled for this turn.

    Returns:
        Directive text.
    """
    available = ", ".join(enabled_tools) if enabled_tools else "none"
    return (
        "You are a helpful AI assistant with access to Google Workspace tools. "
        "You can help users with Google Drive, Gmail, Calendar, and file analysis. "
        "Always be helpful and provide detailed responses.\n\n"
        f"Available tools: {available}\n\n"
        "If the user uploads files, analyze them and provide insights based on "
        "their content."
    )


def build_transcript(user_content: str, enabled_tools: list[str]) -> list[TranscriptTurn]:
    """``[system directive, user turn]`` for a single-shot completion."""
    return [
        TranscriptTurn(role="system", content=build_system_directive(enabled_tools)),
        TranscriptTurn(role="user", content=user_content),
    ]
