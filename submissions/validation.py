"""
submissions/validation.py -- Normalization and field checks for a new submission.

Normalization runs first and only rewrites what is unambiguous:
  - X handle:        leading "@" dropped        ("@proj"    -> "proj")
  - Telegram handle: "@" prefixed when missing  ("proj_tg"  -> "@proj_tg")
  - Discord:         bare slug becomes a link   ("abc"      -> "https://discord.gg/abc")
  - email:           stripped and lowercased

Validation then checks the normalized values and collects every problem,
keyed by field name, into one ValidationError.

Handle patterns are ASCII-only: \\w here means [A-Za-z0-9_].
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from core.errors import ValidationError
from core.validation import normalize_email
from submissions.models import Socials, Submission

PROJECT_NAME_MAX = 100
DESCRIPTION_RANGE = (50, 2000)

X_HANDLE = re.compile(r"^\w{1,15}$", re.ASCII)
TELEGRAM_HANDLE = re.compile(r"^@\w{5,32}$", re.ASCII)
DISCORD_INVITE = re.compile(r"^https?://discord\.gg/[\w-]{2,}$", re.ASCII)

DISCORD_PREFIX = "https://discord.gg/"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_socials(raw: Mapping[str, Any]) -> dict[str, str]:
    x = _text(raw.get("x"))
    telegram = _text(raw.get("telegram"))
    discord = _text(raw.get("discord"))
    founder_tg = _text(raw.get("founder_tg"))

    x = x.lstrip("@")
    if telegram and not telegram.startswith("@"):
        telegram = "@" + telegram
    if discord and not discord.startswith("http"):
        discord = DISCORD_PREFIX + discord
    return {"x": x, "telegram": telegram, "discord": discord, "founder_tg": founder_tg}


def normalize(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Return a cleaned copy of the submitted fields. Never raises."""
    socials = raw.get("socials") or {}
    return {
        "project_name": _text(raw.get("project_name")),
        "description": _text(raw.get("description")),
        "email": _text(raw.get("email")).lower(),
        "socials": normalize_socials(socials if isinstance(socials, Mapping) else {}),
    }


def validate_submission(raw: Mapping[str, Any]) -> Submission:
    """Normalize, then validate. Returns an unsaved Submission or raises ValidationError."""
    data = normalize(raw)
    socials = data["socials"]
    errors: dict[str, str] = {}

    name = data["project_name"]
    if not name:
        errors["project_name"] = "Project name is required."
    elif len(name) > PROJECT_NAME_MAX:
        errors["project_name"] = f"Project name cannot exceed {PROJECT_NAME_MAX} characters."

    low, high = DESCRIPTION_RANGE
    description = data["description"]
    if not description:
        errors["description"] = "Project description is required."
    elif not low <= len(description) <= high:
        errors["description"] = f"Description must be between {low} and {high} characters."

    email: Optional[str] = None
    if data["email"]:
        email = normalize_email(data["email"])
        if email is None:
            errors["email"] = "Invalid email address."

    _check_handle(errors, "x", socials["x"], X_HANDLE, "Invalid X handle (1-15 letters, numbers or underscores).")
    _check_handle(errors, "telegram", socials["telegram"], TELEGRAM_HANDLE, "Must start with @ and be 5-32 characters.")
    _check_handle(errors, "discord", socials["discord"], DISCORD_INVITE, "Invalid Discord invite link.")
    if socials["founder_tg"] and not TELEGRAM_HANDLE.match(socials["founder_tg"]):
        errors["founder_tg"] = "Must start with @ and be 5-32 characters."

    if not data["email"] and not socials["founder_tg"]:
        errors.setdefault("founder_tg", "Either email or founder Telegram required.")

    if errors:
        raise ValidationError("Validation failed.", fields=errors)

    return Submission(
        project_name=name,
        description=description,
        email=email,
        socials=Socials(
            x=socials["x"],
            telegram=socials["telegram"],
            discord=socials["discord"],
            founder_tg=socials["founder_tg"] or None,
        ),
    )


def _check_handle(errors: dict[str, str], key: str, value: str, pattern: re.Pattern, message: str) -> None:
    if not value:
        errors[key] = f"{key.replace('_', ' ').capitalize()} is required."
    elif not pattern.match(value):
        errors[key] = message
