"""
Resource Codec

Converts between Admin API JSON documents and record models. Documents may
be enveloped ({"product": {...}}, {"products": [...]}) or bare. Unknown
fields are kept on the record; anything that is not valid JSON of the
expected shape raises MalformedPayloadError.
"""

import json
import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import MalformedPayloadError
from ..models.base_model import ShopifyObject
from ..resources.registry import ResourceDefinition, ResourceRegistry, default_registry

logger = logging.getLogger(__name__)

Document = Union[bytes, bytearray, str, Mapping[str, Any], List[Any]]


class ResourceCodec:
    """Decode and encode records using the schemas in a resource registry"""

    def __init__(self, registry: Optional[ResourceRegistry] = None):
        self.registry = registry or default_registry

    # ========== Decoding ==========

    def _load(self, document: Document, resource_type: str) -> Any:
        if isinstance(document, (bytes, bytearray, str)):
            try:
                return json.loads(document)
            except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
                raise MalformedPayloadError(f"Payload is not valid JSON: {e}", resource_type=resource_type)
        return document

    def _validate(self, definition: ResourceDefinition, data: Any) -> ShopifyObject:
        if not isinstance(data, Mapping):
            raise MalformedPayloadError(
                f"Expected a JSON object for {definition.name}, got {type(data).__name__}",
                resource_type=definition.name,
            )
        try:
            return definition.model.model_validate(dict(data))
        except PydanticValidationError as e:
            raise MalformedPayloadError(
                f"Payload does not match the {definition.name} schema: {e.error_count()} error(s)",
                resource_type=definition.name,
                response_data={"errors": e.errors(include_url=False, include_context=False)},
            )

    def decode(self, document: Document, resource_type: str) -> ShopifyObject:
        """Decode a single record from an enveloped or bare JSON object"""
        definition = self.registry.get(resource_type)
        data = self._load(document, definition.name)

        if isinstance(data, Mapping) and definition.singular_key in data:
            data = data[definition.singular_key]
        return self._validate(definition, data)

    def decode_many(self, document: Document, resource_type: str) -> List[ShopifyObject]:
        """Decode a list response; an empty list is a valid page"""
        definition = self.registry.get(resource_type)
        data = self._load(document, definition.name)

        if isinstance(data, Mapping):
            if definition.plural_key not in data:
                raise MalformedPayloadError(
                    f"List response is missing the '{definition.plural_key}' key",
                    resource_type=definition.name,
                )
            data = data[definition.plural_key]

        if not isinstance(data, list):
            raise MalformedPayloadError(
                f"Expected a JSON array of {definition.plural_key}, got {type(data).__name__}",
                resource_type=definition.name,
            )
        return [self._validate(definition, item) for item in data]

    def decode_count(self, document: Document, resource_type: Optional[str] = None) -> int:
        data = self._load(document, resource_type or "count")
        count = data.get("count") if isinstance(data, Mapping) else None
        if isinstance(count, bool) or not isinstance(count, int):
            raise MalformedPayloadError("Count response has no integer 'count'", resource_type=resource_type)
        return count

    # ========== Encoding ==========

    def _definition_for(self, record: ShopifyObject, resource_type: Optional[str]) -> ResourceDefinition:
        if resource_type:
            return self.registry.get(resource_type)
        for name in self.registry.available():
            definition = self.registry.get(name)
            if type(record) is definition.model:
                return definition
        # Falls through to the registry's not-registered error
        return self.registry.get(type(record).__name__)

    def to_payload(self, record: ShopifyObject, resource_type: Optional[str] = None) -> dict:
        """Enveloped, JSON-ready dict for a request body"""
        definition = self._definition_for(record, resource_type)
        return {definition.singular_key: record.to_wire()}

    def encode(self, record: ShopifyObject, resource_type: Optional[str] = None) -> bytes:
        return json.dumps(self.to_payload(record, resource_type), separators=(",", ":")).encode("utf-8")
