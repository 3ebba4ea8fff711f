"""JSON codec for stored objects.

Built on pydantic's TypeAdapter so any dataclass or pydantic model can be
used as a decode target without registering serializers by hand.
"""

import threading
from typing import Any, Dict

from pydantic import TypeAdapter, ValidationError

from tagshelf.types import ObjectType, SerializationFailure


class JsonCodec:
    """Encode objects to JSON text and decode them back into their type."""

    def __init__(self):
        self._adapters: Dict[type, TypeAdapter] = {}
        self._lock = threading.Lock()

    def _adapter(self, model: type) -> TypeAdapter:
        with self._lock:
            adapter = self._adapters.get(model)
            if adapter is None:
                adapter = TypeAdapter(model)
                self._adapters[model] = adapter
            return adapter

    def encode(self, obj: Any) -> str:
        try:
            return self._adapter(type(obj)).dump_json(obj).decode("utf-8")
        except Exception as e:
            object_type = _safe_call(obj, "stored_object_type")
            object_id = _safe_call(obj, "stored_object_id")
            name = object_type.name if object_type is not None else type(obj).__name__
            raise SerializationFailure(name, object_id, e) from e

    def decode(self, text: str, object_type: ObjectType) -> Any:
        try:
            return self._adapter(object_type.model).validate_json(text)
        except (ValidationError, ValueError, TypeError) as e:
            raise SerializationFailure(object_type.name, None, e) from e


def _safe_call(obj: Any, method: str) -> Any:
    fn = getattr(obj, method, None)
    if fn is None:
        return None
    try:
        return fn()
    except Exception:
        return None
