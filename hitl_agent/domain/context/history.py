from typing import List, Sequence

from hitl_agent.domain.models.agent_state import Message


def trim_history(messages: Sequence[Message], max_length: int) -> List[Message]:
    """Keep only the newest max_length messages, dropping the oldest first"""

    if max_length <= 0:
        return []
    if len(messages) <= max_length:
        return list(messages)
    return list(messages[-max_length:])


def append_and_trim(
    messages: Sequence[Message],
    new_messages: Sequence[Message],
    max_length: int
) -> List[Message]:
    """Append turns and re-apply the history cap"""

    return trim_history([*messages, *new_messages], max_length)
