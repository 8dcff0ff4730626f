"""Detection of the /STOP opt-out command in inbound messages."""

import re
from typing import Any, Iterable

from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

STOP_PATTERN = re.compile(r"^/STOP$", re.IGNORECASE)
INCOMING = "incoming"


def is_stop_message(text: str | None) -> bool:
    """Return True if the whole message, trimmed, is the stop command."""
    return bool(STOP_PATTERN.match((text or "").strip()))


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def has_stop_command(messages: Iterable[Any]) -> bool:
    """Check incoming messages for an opt-out command.

    Outgoing messages are ignored, so a dispatcher quoting the command back
    never opts the driver out.

    Args:
        messages: Chronological messages exposing ``direction`` and ``text``
            either as attributes or as dict keys

    Returns:
        True if any incoming message is exactly the stop command
    """
    for message in messages:
        if _field(message, "direction") != INCOMING:
            continue

        if is_stop_message(_field(message, "text")):
            LOGGER.info(
                "Detected /STOP opt-out command",
                extra={"from": _field(message, "from_number")},
            )
            return True

    return False
