from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Any

from replay_analyzer.replay.types import EventKind


class ReplayEventSchema(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: int
    timestamp: int = Field(ge=0)
    data: Any = None
    window_id: str | None = Field(None, alias="windowId", max_length=256)


KNOWN_KINDS = {k.value for k in EventKind}


def validate_event(evt: dict) -> tuple[bool, str | None]:
    if not isinstance(evt, dict):
        return False, "not_an_object"
    try:
        model = ReplayEventSchema(**evt)
    except ValidationError as ve:
        return False, f"validation_error:{ve.errors()[0].get('msg','invalid')}"
    except TypeError:
        return False, "validation_error:invalid keys"
    if model.type not in KNOWN_KINDS:
        return False, f"unknown_event_kind:{model.type}"
    return True, None
