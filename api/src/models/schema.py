"""
Entity schema descriptors.

An ``EntitySchema`` is a plain description of a persisted resource: its
collection, its typed fields and their validation rules. The CRUD factory,
the repositories and the query feature builder are all generic over this
descriptor instead of over model classes.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId

from api.src.exceptions import CastError, ValidationError


STRING = "string"
NUMBER = "number"
INTEGER = "integer"
BOOLEAN = "boolean"
DATE = "date"
OBJECT_ID = "object_id"
OBJECT = "object"

# Fields the store owns; never writable through a generic update.
SYSTEM_FIELDS = frozenset({"_id", "id", "createdAt"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FieldSpec:
    """
    Type and validation rules for a single field.

    ``type`` is one of the module-level type names. ``many`` marks an array of
    that type. ``required`` may be a custom message. ``validator`` receives
    the cast value and the whole (merged) document and returns a bool.
    """

    type: str = STRING
    many: bool = False
    required: Union[bool, str] = False
    default: Any = None
    enum: Optional[Tuple[Any, ...]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    unique: bool = False
    hidden: bool = False
    immutable: bool = False
    transient: bool = False
    trim: bool = False
    lowercase: bool = False
    ref: Optional[str] = None
    validator: Optional[Callable[[Any, Mapping[str, Any]], bool]] = None
    messages: Mapping[str, str] = field(default_factory=dict)


def cast_scalar(type_name: str, value: Any) -> Any:
    """
    Cast ``value`` to ``type_name``.

    Raises:
        ValueError: If the value cannot be represented as that type
    """
    if value is None:
        return None

    if type_name == STRING:
        if isinstance(value, (dict, list)):
            raise ValueError("not a string")
        return str(value)

    if type_name in (NUMBER, INTEGER):
        if isinstance(value, bool):
            raise ValueError("booleans are not numbers")
        if isinstance(value, (int, float)):
            number = value
        else:
            text = str(value).strip()
            try:
                number = int(text)
            except ValueError:
                number = float(text)
        if type_name == INTEGER:
            if isinstance(number, float) and not number.is_integer():
                raise ValueError("not an integer")
            return int(number)
        return number

    if type_name == BOOLEAN:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no"):
            return False
        raise ValueError("not a boolean")

    if type_name == DATE:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        else:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    if type_name == OBJECT_ID:
        if isinstance(value, ObjectId):
            return value
        if isinstance(value, dict) and "_id" in value:
            value = value["_id"]
        try:
            return ObjectId(str(value))
        except (InvalidId, TypeError) as exc:
            raise ValueError("not an object id") from exc

    if type_name == OBJECT:
        if not isinstance(value, dict):
            raise ValueError("not an object")
        return value

    raise ValueError(f"unknown field type {type_name}")


def to_object_id(value: Any, path: str = "_id") -> ObjectId:
    """Cast an identifier coming from a URL or token, raising CastError."""
    try:
        return cast_scalar(OBJECT_ID, value)
    except ValueError:
        raise CastError(path, value)


@dataclass(frozen=True)
class EntitySchema:
    """Descriptor for one entity kind."""

    name: str
    collection: str
    fields: Mapping[str, FieldSpec]
    unique_together: Tuple[Tuple[str, ...], ...] = ()
    default_sort: str = "-createdAt"

    @property
    def hidden_fields(self) -> FrozenSet[str]:
        return frozenset(n for n, spec in self.fields.items() if spec.hidden)

    @property
    def immutable_fields(self) -> FrozenSet[str]:
        declared = {n for n, spec in self.fields.items() if spec.immutable}
        return SYSTEM_FIELDS | declared

    def unique_indexes(self) -> Tuple[Tuple[str, ...], ...]:
        """Single-field unique indexes followed by compound ones."""
        single = tuple((n,) for n, spec in self.fields.items() if spec.unique)
        return single + tuple(self.unique_together)

    def cast_filter_value(self, name: str, raw: Any) -> Any:
        """
        Cast a query-string value for ``name`` to the field's type.

        Fields the schema doesn't declare are passed through untouched.

        Raises:
            CastError: If the value doesn't fit the field type
        """
        spec = self.fields.get(name)
        if name == "_id" or name == "id":
            spec = FieldSpec(type=OBJECT_ID)
        if spec is None:
            return raw
        try:
            return cast_scalar(spec.type, raw)
        except (ValueError, TypeError):
            raise CastError(name, raw)

    def validate(
        self,
        data: Mapping[str, Any],
        *,
        partial: bool = False,
        current: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Validate and cast an incoming document.

        Args:
            data: Raw document (request body)
            partial: Only validate the keys present (updates)
            current: Stored document, merged in for cross-field validators

        Returns:
            Cleaned document with defaults applied (create only). Unknown
            keys and transient fields are dropped.

        Raises:
            ValidationError: On any rule violation
        """
        errors: Dict[str, str] = {}
        cleaned: Dict[str, Any] = {}

        if partial:
            blocked = sorted(k for k in data if k in self.immutable_fields)
            if blocked:
                raise ValidationError(
                    {k: f"Field '{k}' cannot be modified" for k in blocked}
                )

        for name, spec in self.fields.items():
            if name not in data:
                continue
            try:
                cleaned[name] = self._cast_field(spec, data[name])
            except (ValueError, TypeError):
                errors[name] = spec.messages.get(
                    "type", f"Cast to {spec.type} failed for value \"{data[name]}\" at path \"{name}\""
                )

        if not partial:
            for name, spec in self.fields.items():
                if name not in cleaned and name not in errors and spec.default is not None:
                    cleaned[name] = spec.default() if callable(spec.default) else spec.default

        merged: Dict[str, Any] = dict(current or {})
        merged.update(cleaned)

        for name, spec in self.fields.items():
            if name in errors:
                continue
            if name not in cleaned and partial:
                continue
            message = self._check_rules(name, spec, cleaned.get(name), merged)
            if message:
                errors[name] = message

        if errors:
            raise ValidationError(errors)

        return {k: v for k, v in cleaned.items() if not self.fields[k].transient}

    def _cast_field(self, spec: FieldSpec, value: Any) -> Any:
        if value is None:
            return None
        if spec.many:
            if not isinstance(value, (list, tuple)):
                value = [value]
            return [self._cast_one(spec, item) for item in value]
        return self._cast_one(spec, value)

    @staticmethod
    def _cast_one(spec: FieldSpec, value: Any) -> Any:
        cast = cast_scalar(spec.type, value)
        if isinstance(cast, str):
            if spec.trim:
                cast = cast.strip()
            if spec.lowercase:
                cast = cast.lower()
        return cast

    @staticmethod
    def _check_rules(
        name: str, spec: FieldSpec, value: Any, doc: Mapping[str, Any]
    ) -> Optional[str]:
        if value is None or value == "" or value == []:
            if spec.required:
                if isinstance(spec.required, str):
                    return spec.required
                return f"Path `{name}` is required."
            return None

        values = value if spec.many else [value]
        for item in values:
            if spec.enum is not None and item not in spec.enum:
                return spec.messages.get("enum", f"`{item}` is not a valid enum value for path `{name}`.")
            if spec.min_value is not None and item < spec.min_value:
                return spec.messages.get("min", f"Path `{name}` ({item}) is less than minimum allowed value ({spec.min_value}).")
            if spec.max_value is not None and item > spec.max_value:
                return spec.messages.get("max", f"Path `{name}` ({item}) is more than maximum allowed value ({spec.max_value}).")
            if isinstance(item, str):
                if spec.min_length is not None and len(item) < spec.min_length:
                    return spec.messages.get(
                        "min_length", f"Path `{name}` is shorter than the minimum allowed length ({spec.min_length})."
                    )
                if spec.max_length is not None and len(item) > spec.max_length:
                    return spec.messages.get(
                        "max_length", f"Path `{name}` is longer than the maximum allowed length ({spec.max_length})."
                    )

        if spec.validator is not None and not spec.validator(value, doc):
            return spec.messages.get("validator", f"Validator failed for path `{name}`")

        return None


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
