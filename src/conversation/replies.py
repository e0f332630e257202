"""Reading short user replies: yes/no words, numeric picks, emoji reactions, fix commands."""

import re
from typing import Optional, Union

YES = "yes"
NO = "no"

AFFIRMATIVE = {"yes", "y", "yep", "yeah", "yup", "ok", "okay", "sure", "confirm", "go", "apply", "✅", "👍"}
NEGATIVE = {"no", "n", "nope", "nah", "cancel", "stop", "❌", "👎"}

YES_REACTIONS = {"white_check_mark", "heavy_check_mark", "ballot_box_with_check", "+1", "thumbsup", "ok_hand"}
NO_REACTIONS = {"x", "-1", "thumbsdown", "no_entry", "no_entry_sign", "heavy_multiplication_x"}

FIX_RE = re.compile(r"^\s*fix:\s*(\w+)", re.IGNORECASE)
EXCLUDE_RE = re.compile(
    r"^\s*(?:yes|y|yep|yeah|ok|okay)?[\s,]*(?:but\s+)?except\s+(?:don['’]?t|do\s+not)\s+tag\s+"
    r"[\"'“‘]?(?P<title>.+?)[\"'”’]?\s*[.!]?\s*$",
    re.IGNORECASE,
)

Reply = Union[str, int, None]


def _normalize(text: str) -> str:
    return (text or "").strip().lower().rstrip(".!")


def parse_confirmation(text: str) -> Reply:
    """"yes", "no", an int for a numeric pick, or None when the reply is neither."""
    normalized = _normalize(text)
    if normalized in AFFIRMATIVE:
        return YES
    if normalized in NEGATIVE:
        return NO
    if re.fullmatch(r"#?\d+", normalized):
        return int(normalized.lstrip("#"))
    return None


def reaction_to_reply(reaction: str) -> Optional[str]:
    # skin tone variants arrive as "+1::skin-tone-3"
    name = (reaction or "").split("::", 1)[0]
    if name in YES_REACTIONS:
        return YES
    if name in NO_REACTIONS:
        return NO
    return None


def is_fix_command(text: str) -> bool:
    return (text or "").strip().lower().startswith("fix:")


def parse_fix_category(text: str) -> Optional[str]:
    match = FIX_RE.match(text or "")
    return match.group(1).lower() if match else None


def parse_exclusion(text: str) -> Optional[str]:
    """The title in "yes except don't tag 'X'", or None."""
    match = EXCLUDE_RE.match(text or "")
    if not match:
        return None
    return match.group("title").strip() or None
