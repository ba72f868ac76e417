"""
Sparse field patch applied to a review request in a single write.

A path that was never set is absent and leaves the stored value untouched. A path
set to ``None`` is present and clears the stored value.
"""

from typing import Any, Iterator, Mapping, Optional

from pydantic import BaseModel

from src.core.review_requests.models import ReviewRequest, ReviewState, TimeTracking

_NESTED_MODELS: dict[str, type[BaseModel]] = {
    "legal_review": ReviewState,
    "compliance_review": ReviewState,
    "time_tracking": TimeTracking,
}


class RequestDelta:
    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: dict[str, Any] = {}
        for path, value in (values or {}).items():
            self.set(path, value)

    def set(self, path: str, value: Any) -> "RequestDelta":
        _validate_path(path)
        self._values[path] = value
        return self

    def is_set(self, path: str) -> bool:
        return path in self._values

    def get(self, path: str, default: Any = None) -> Any:
        return self._values.get(path, default)

    def merge(self, other: "RequestDelta") -> "RequestDelta":
        merged = RequestDelta(self._values)
        for path, value in other.items():
            merged.set(path, value)
        return merged

    def set_model_changes(self, prefix: str, before: BaseModel, after: BaseModel) -> "RequestDelta":
        for name in type(after).model_fields:
            new_value = getattr(after, name)
            if getattr(before, name) != new_value:
                self.set(f"{prefix}.{name}", new_value)
        return self

    def items(self) -> Iterator[tuple[str, Any]]:
        return iter(list(self._values.items()))

    def fields_changed(self) -> list[str]:
        return sorted(self._values)

    def apply_to(self, request: ReviewRequest) -> ReviewRequest:
        document = request.model_dump()
        for path, value in self._values.items():
            target = document
            *parents, leaf = path.split(".")
            for parent in parents:
                target = target[parent]
            target[leaf] = _dump_value(value)
        return ReviewRequest.model_validate(document)

    def to_json(self) -> dict[str, Any]:
        return {path: _dump_value(value, mode="json") for path, value in self._values.items()}

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, path: object) -> bool:
        return path in self._values

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestDelta):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"RequestDelta({self._values!r})"


def _validate_path(path: str) -> None:
    parts = path.split(".")
    if len(parts) == 1 and parts[0] in ReviewRequest.model_fields:
        return
    if len(parts) == 2:
        nested = _NESTED_MODELS.get(parts[0])
        if nested is not None and parts[1] in nested.model_fields:
            return
    raise ValueError(f"UNKNOWN_DELTA_FIELD: {path}")


def _dump_value(value: Any, mode: str = "python") -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode=mode)
    if isinstance(value, (list, tuple)):
        return [_dump_value(item, mode=mode) for item in value]
    if mode == "json" and hasattr(value, "isoformat"):
        return value.isoformat()
    return value
