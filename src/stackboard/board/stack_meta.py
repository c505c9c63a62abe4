"""Stack metadata overlay: persisted ordering, color and collapse state per stack.

The overlay lives in the view metadata as a JSON blob keyed by grouping
column id, so switching the grouping field back and forth keeps each
column's layout. It is parsed and validated using Pydantic. Decoding fails
closed: a missing, unreadable or unsupported blob yields an empty overlay,
which makes the reconciler bootstrap fresh descriptors instead of raising.

Versioned form:
    {"version": 1, "stacks": {"<column id>": [{"id": ..., "title": ..., ...}]}}

Legacy (unversioned) form, still accepted when decoding:
    {"<column id>": [{"id": ..., "title": ..., ...}]}
"""

import json
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stackboard.board.types import StackDescriptor

logger = logging.getLogger(__name__)

OVERLAY_VERSION = 1


class StackMetaEntry(BaseModel):
    """One persisted stack descriptor."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    title: str | None = None
    order: float | None = None
    color: str | None = None
    collapsed: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> str:
        if v is None or v == "":
            raise ValueError("must not be empty")
        return str(v)

    @staticmethod
    def from_descriptor(descriptor: StackDescriptor) -> "StackMetaEntry":
        return StackMetaEntry(
            id=descriptor.id,
            title=descriptor.title,
            order=descriptor.order,
            color=descriptor.color,
            collapsed=descriptor.collapsed,
        )

    def to_descriptor(self, position: int) -> StackDescriptor:
        return StackDescriptor(
            id=self.id,
            title=self.title,
            order=self.order if self.order is not None else float(position),
            color=self.color,
            collapsed=self.collapsed,
        )


class StackMetaOverlay(BaseModel):
    """All persisted stack layouts of a view, keyed by grouping column id."""

    model_config = ConfigDict(frozen=True)

    version: int = OVERLAY_VERSION
    stacks: dict[str, tuple[StackMetaEntry, ...]] = Field(default_factory=dict)

    def descriptors_for(self, column_id: str) -> tuple[StackDescriptor, ...] | None:
        """Persisted descriptors for a grouping column, None when never saved."""
        entries = self.stacks.get(column_id)
        if not entries:
            return None
        return tuple(entry.to_descriptor(position) for position, entry in enumerate(entries))

    def with_descriptors(
        self, column_id: str, descriptors: tuple[StackDescriptor, ...]
    ) -> "StackMetaOverlay":
        stacks = dict(self.stacks)
        stacks[column_id] = tuple(StackMetaEntry.from_descriptor(d) for d in descriptors)
        return StackMetaOverlay(version=OVERLAY_VERSION, stacks=stacks)


def decode_overlay(blob: str | dict | None) -> StackMetaOverlay:
    """Parse a persisted overlay blob.

    Args:
        blob: JSON text or an already-parsed mapping, None when never saved

    Returns:
        The decoded overlay, or an empty overlay when the blob is missing or invalid
    """
    if blob is None or blob == "":
        return StackMetaOverlay()

    data: object = blob
    if isinstance(blob, str):
        try:
            data = json.loads(blob)
        except json.JSONDecodeError as e:
            logger.warning("Discarding unreadable stack metadata: %s", e)
            return StackMetaOverlay()

    if not isinstance(data, dict):
        logger.warning("Discarding stack metadata that is not a JSON object")
        return StackMetaOverlay()

    if "version" in data and "stacks" in data:
        version = data.get("version")
        if not isinstance(version, int) or version > OVERLAY_VERSION:
            logger.warning("Discarding stack metadata with unsupported version %r", version)
            return StackMetaOverlay()
        candidate: object = data
    else:
        candidate = {"version": OVERLAY_VERSION, "stacks": data}

    try:
        return StackMetaOverlay.model_validate(candidate)
    except ValidationError as e:
        logger.warning("Discarding invalid stack metadata: %d error(s)", e.error_count())
        return StackMetaOverlay()


def encode_overlay(overlay: StackMetaOverlay) -> str:
    return overlay.model_dump_json()


class StackMetaStore:
    """Ordered stack descriptors of the active grouping column.

    Descriptors are kept sorted by ascending `order`; ties keep their
    insertion order. Position indexes used by callers refer to this order.
    """

    def __init__(self, grouping_column_id: str, overlay: StackMetaOverlay) -> None:
        self._grouping_column_id = grouping_column_id
        self._overlay = overlay
        self._descriptors: list[StackDescriptor] = []
        persisted = overlay.descriptors_for(grouping_column_id)
        if persisted is not None:
            self.replace_all(persisted)

    @property
    def grouping_column_id(self) -> str:
        return self._grouping_column_id

    @property
    def descriptors(self) -> tuple[StackDescriptor, ...]:
        return tuple(self._descriptors)

    @property
    def persisted_descriptors(self) -> tuple[StackDescriptor, ...] | None:
        """Descriptors as last decoded or serialized, None when never saved."""
        return self._overlay.descriptors_for(self._grouping_column_id)

    def replace_all(self, descriptors: tuple[StackDescriptor, ...]) -> None:
        self._descriptors = sorted(descriptors, key=lambda d: d.order)

    def index_of_title(self, title: str | None) -> int:
        for index, descriptor in enumerate(self._descriptors):
            if descriptor.title == title:
                return index
        return -1

    def remove_at(self, index: int) -> StackDescriptor:
        return self._descriptors.pop(index)

    def set_collapsed(self, stack_id: str, collapsed: bool) -> bool:
        """Set a stack's collapse flag; returns False when the stack is unknown."""
        for index, descriptor in enumerate(self._descriptors):
            if descriptor.id == stack_id:
                self._descriptors[index] = StackDescriptor(
                    id=descriptor.id,
                    title=descriptor.title,
                    order=descriptor.order,
                    color=descriptor.color,
                    collapsed=collapsed,
                )
                return True
        return False

    def serialize(self) -> str:
        """Encode the full overlay with this column's current descriptors."""
        self._overlay = self._overlay.with_descriptors(
            self._grouping_column_id, tuple(self._descriptors)
        )
        return encode_overlay(self._overlay)
