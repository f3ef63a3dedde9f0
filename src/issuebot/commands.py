"""Comment command interpreter.

Recognizes "@<bot-name> <action> [args]" anywhere in a comment body,
case-insensitively. Unrecognized actions map to HELP.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class CommandAction(str, Enum):
    ANALYZE = "analyze"
    FIX = "fix"
    SUGGEST = "suggest"
    HELP = "help"


# priority re-runs the analysis, which re-evaluates priority
_ALIASES = {
    "analyze": CommandAction.ANALYZE,
    "priority": CommandAction.ANALYZE,
    "fix": CommandAction.FIX,
    "suggest": CommandAction.SUGGEST,
    "help": CommandAction.HELP,
}


class Command(BaseModel):
    """A parsed bot command.

    Attributes:
        action: What to do.
        raw_action: The action word as written, lowercased.
        args: Remainder of the line after the action word.
    """

    action: CommandAction
    raw_action: str
    args: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.action == CommandAction.HELP and self.raw_action != "help"


def _pattern(bot_name: str) -> re.Pattern:
    return re.compile(
        rf"@{re.escape(bot_name)}\s+(\w+)(.*)$",
        re.IGNORECASE | re.MULTILINE,
    )


def parse_command(body: str, bot_name: str) -> Optional[Command]:
    """Extract the first bot command from a comment body.

    Returns:
        The command, or None if the bot is not addressed.
    """
    if not body:
        return None
    match = _pattern(bot_name).search(body)
    if match is None:
        return None

    raw_action = match.group(1).lower()
    return Command(
        action=_ALIASES.get(raw_action, CommandAction.HELP),
        raw_action=raw_action,
        args=match.group(2).strip(),
    )
