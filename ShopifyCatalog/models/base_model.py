"""
Base Resource Record

Every resource returned by the Admin API is decoded into a subclass of
ShopifyObject. Records are immutable, keep unknown server fields in an
extra-fields bucket and remember which fields the server actually sent, so a
field that was never sent is distinguishable from one sent as null.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class _AbsentType:
    """Sentinel for a field the server never sent"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (_AbsentType, ())


ABSENT = _AbsentType()


class FieldState(str, Enum):
    """Presence of a field in the document a record was decoded from"""

    ABSENT = "absent"
    NULL = "null"
    PRESENT = "present"


class ShopifyObject(BaseModel):
    """Base record for every Admin API resource."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: Optional[int] = None
    admin_graphql_api_id: Optional[str] = None

    @property
    def extra_fields(self) -> Dict[str, Any]:
        """Fields the server sent that this record type does not declare"""
        return dict(self.model_extra or {})

    def field_state(self, name: str) -> FieldState:
        if name not in self.model_fields_set and name not in (self.model_extra or {}):
            return FieldState.ABSENT
        if self.get(name) is None:
            return FieldState.NULL
        return FieldState.PRESENT

    def is_absent(self, name: str) -> bool:
        return self.field_state(name) is FieldState.ABSENT

    def get(self, name: str, default: Any = ABSENT) -> Any:
        """
        Read a declared or extra field without collapsing absent and null.

        Returns `default` (the ABSENT sentinel unless overridden) when the
        field was never sent, and None when it was sent as null.
        """
        extra = self.model_extra or {}
        if name in extra:
            return extra[name]
        if name not in self.model_fields_set:
            return default
        return getattr(self, name)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict holding only the fields that were set, plus extras"""
        return self.model_dump(mode="json", exclude_unset=True, by_alias=True)
