import re

from pydantic import BaseModel, field_validator

_HEX_COLOR = re.compile(r"^#?([0-9A-Fa-f]{6})$")


def normalize_color(value: str) -> str:
    match = _HEX_COLOR.match(value.strip())
    if not match:
        raise ValueError("color must be a hex value like #5865F2")
    return "#" + match.group(1).upper()


def color_to_int(value: str) -> int:
    return int(normalize_color(value)[1:], 16)


class CommunitySettingsUpdate(BaseModel):
    role_id: str | None = None
    prompt_title: str | None = None
    prompt_body: str | None = None
    prompt_color: str | None = None
    direct_message_title: str | None = None
    direct_message_body: str | None = None
    direct_message_color: str | None = None

    @field_validator("prompt_color", "direct_message_color")
    @classmethod
    def _check_color(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return normalize_color(v)
