"""
Preview-text commands.

Agents type a command as the first thing in a reply or note, e.g.

    #REOPEN@2030-01-01

Help Scout puts the start of the latest thread into the conversation's
``preview``, which is what the webhook hands us. Anything that isn't a
well-formed, known command is ignored.
"""

import datetime as dt
import enum
import logging
from typing import NamedTuple, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "#"
ARG_SEPARATOR = "@"


class CommandKind(str, enum.Enum):
    REOPEN = "REOPEN"


class Command(NamedTuple):
    kind: CommandKind
    arg: str
    due_at: int  # epoch ms


def to_epoch_ms(d: dt.datetime) -> int:
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    # OverflowError outside years 1..9999 in UTC
    return int(d.astimezone(dt.timezone.utc).timestamp() * 1000)


def parse_date_ms(text: str) -> Optional[int]:
    """
    Parse a free-form date into epoch milliseconds.
    Dates without a timezone are taken as UTC. Returns None if unparseable.
    """
    s = (text or "").strip()
    if not s:
        return None
    try:
        return to_epoch_ms(date_parser.parse(s))
    except (ValueError, OverflowError):
        return None


def split_command(preview: str) -> Optional[tuple[str, str]]:
    """Return (keyword, raw_arg) if the preview starts with '#', else None."""
    if not preview or preview[0] != COMMAND_PREFIX:
        return None
    keyword, _, arg = preview[1:].partition(ARG_SEPARATOR)
    return keyword, arg


def parse_command(preview: Optional[str]) -> Optional[Command]:
    parts = split_command(preview or "")
    if parts is None:
        return None

    keyword, arg = parts
    logger.info("Command received: %s", keyword)

    # keywords are case-sensitive
    try:
        kind = CommandKind(keyword)
    except ValueError:
        logger.debug("Ignoring unknown command %r", keyword)
        return None

    # REOPEN is the only kind so far
    due_at = parse_date_ms(arg)
    if due_at is None:
        logger.info("Ignoring %s with unparseable date %r", kind.value, arg)
        return None
    return Command(kind, arg, due_at)
