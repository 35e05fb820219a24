"""
Action schema.

Every extracted action is one variant of a tagged union keyed on `type`.
All variants share the vehicle identification fields; wire names follow the
chat extraction format (camelCase for multi-word fields).
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class ActionType(str, Enum):
    LOCATION_UPDATE = "LOCATION_UPDATE"
    SOLD = "SOLD"
    REPAIR = "REPAIR"
    READY = "READY"
    DROP_OFF = "DROP_OFF"
    CUSTOMER_APPOINTMENT = "CUSTOMER_APPOINTMENT"
    RECON_APPOINTMENT = "RECON_APPOINTMENT"
    NEXT_LOCATION = "NEXT_LOCATION"
    TASK = "TASK"


def _coerce_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class ActionBase(BaseModel):
    """Vehicle identification shared by every action."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rego: str = ""
    make: str = ""
    model: str = ""
    badge: str = ""
    year: str = ""
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _coerce_fields(cls, data: Any) -> Any:
        # `type` is the union discriminator and must reach pydantic untouched
        if not isinstance(data, dict):
            return data
        return {key: value if key == "type" else _coerce_text(value) for key, value in data.items()}

    def wire(self) -> dict[str, Any]:
        """Dump with wire names, for prompts and logs."""
        return self.model_dump(by_alias=True, mode="json")


class LocationUpdateAction(ActionBase):
    type: Literal["LOCATION_UPDATE"] = "LOCATION_UPDATE"
    location: str = ""


class SoldAction(ActionBase):
    type: Literal["SOLD"] = "SOLD"


class RepairAction(ActionBase):
    type: Literal["REPAIR"] = "REPAIR"
    checklist_item: str = Field(default="", alias="checklistItem")


class ReadyAction(ActionBase):
    type: Literal["READY"] = "READY"
    readiness: str = ""


class DropOffAction(ActionBase):
    type: Literal["DROP_OFF"] = "DROP_OFF"
    destination: str = ""
    note: str = ""


class CustomerAppointmentAction(ActionBase):
    type: Literal["CUSTOMER_APPOINTMENT"] = "CUSTOMER_APPOINTMENT"
    name: str = ""
    date_time: str = Field(default="", alias="dateTime")
    notes: str = ""


class ReconAppointmentAction(ActionBase):
    type: Literal["RECON_APPOINTMENT"] = "RECON_APPOINTMENT"
    name: str = ""
    service: str = ""
    category: str = ""
    date_time: str = Field(default="", alias="dateTime")
    notes: str = ""


class NextLocationAction(ActionBase):
    type: Literal["NEXT_LOCATION"] = "NEXT_LOCATION"
    next_location: str = Field(default="", alias="nextLocation")


class TaskAction(ActionBase):
    type: Literal["TASK"] = "TASK"
    task: str = ""


Action = Annotated[
    Union[
        LocationUpdateAction,
        SoldAction,
        RepairAction,
        ReadyAction,
        DropOffAction,
        CustomerAppointmentAction,
        ReconAppointmentAction,
        NextLocationAction,
        TaskAction,
    ],
    Field(discriminator="type"),
]

ACTION_MODELS: dict[ActionType, type[ActionBase]] = {
    ActionType.LOCATION_UPDATE: LocationUpdateAction,
    ActionType.SOLD: SoldAction,
    ActionType.REPAIR: RepairAction,
    ActionType.READY: ReadyAction,
    ActionType.DROP_OFF: DropOffAction,
    ActionType.CUSTOMER_APPOINTMENT: CustomerAppointmentAction,
    ActionType.RECON_APPOINTMENT: ReconAppointmentAction,
    ActionType.NEXT_LOCATION: NextLocationAction,
    ActionType.TASK: TaskAction,
}

action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(data: Any) -> Action:
    """Validate one raw item into its variant. Raises pydantic.ValidationError."""
    if isinstance(data, dict) and isinstance(data.get("type"), str):
        data = {**data, "type": data["type"].strip().upper()}
    return action_adapter.validate_python(data)


def action_type(action: ActionBase) -> ActionType:
    return ActionType(action.type)
