"""Slug generation and control-group indexing.

Slugs are the only identifiers external callers use for hubs, activities,
devices, and commands, so they must be stable across refresh cycles.
"""

import re
import unicodedata
from collections.abc import Iterable
from typing import Any

from harmony_api.hub.constants import ACTION_DELIMITER
from harmony_api.hub.models import Command

_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")


def slugify(label: str | None) -> str:
    """Normalize a label to a lowercase, hyphen-separated identifier.

    Accented characters are folded to ASCII, then every run of whitespace,
    punctuation, underscores, or hyphens collapses to a single ``-``.
    """
    if not label:
        return ""
    text = unicodedata.normalize("NFKD", str(label)).encode("ascii", "ignore").decode("ascii")
    text = _SEPARATOR_RE.sub("-", text.lower())
    return text.strip("-")


def escape_action(action: str) -> str:
    """Double the wire delimiter so it survives use as an argument separator."""
    return action.replace(ACTION_DELIMITER, ACTION_DELIMITER * 2)


def index_control_groups(control_groups: Iterable[dict[str, Any]] | None) -> dict[str, Command]:
    """Flatten a hub control-group structure into ``{slug: Command}``.

    Each group carries a ``function`` list whose entries have ``name``,
    ``label``, and ``action``. Functions sharing a slug overwrite earlier
    ones (last write wins).
    """
    commands: dict[str, Command] = {}
    for group in control_groups or ():
        for func in group.get("function") or ():
            label = func.get("label") or func.get("name") or ""
            slug = slugify(label)
            commands[slug] = Command(
                name=func.get("name", ""),
                slug=slug,
                label=label,
                action=escape_action(func["action"]),
            )
    return commands
