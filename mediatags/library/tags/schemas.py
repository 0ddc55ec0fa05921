"""
MediaTags - Operation Inputs

Pydantic models for the facade inputs. Ids may be passed as `ObjectId` or
as their 24-char hex string.
"""
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar

from bson import ObjectId
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator, model_validator

from mediatags.library.tags.exceptions import TagValidationError

M = TypeVar("M", bound=BaseModel)


def _to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"Invalid ObjectId: {value!r}")


PyObjectId = Annotated[ObjectId, BeforeValidator(_to_object_id)]


def parse_input(model_cls: Type[M], **kwargs) -> M:
    """Build an input model, reporting failures as TagValidationError."""
    try:
        return model_cls(**kwargs)
    except ValidationError as e:
        raise TagValidationError(str(e)) from e


def _overlap(a: List[ObjectId], b: List[ObjectId]) -> List[ObjectId]:
    b_set = set(b)
    return [i for i in a if i in b_set]


class _Input(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")


def _clean_label(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("Label must not be blank")
    return value


class CreateTagInput(_Input):
    label: str
    aliases: List[str] = []
    parent_ids: List[PyObjectId] = []
    child_ids: List[PyObjectId] = []
    regex: Optional[str] = None
    category_id: Optional[PyObjectId] = None
    with_regen: bool = True
    notify: bool = True

    @field_validator("label")
    @classmethod
    def check_label(cls, value):
        return _clean_label(value)


class EditTagInput(_Input):
    """
    Adjacency is given either as full lists (`child_ids`, `parent_ids`) or
    as deltas (`*_to_add`, `*_to_remove`), not both for the same side.
    """
    id: PyObjectId
    label: Optional[str] = None
    aliases: Optional[List[str]] = None
    regex: Optional[str] = None
    category_id: Optional[PyObjectId] = None
    child_ids: Optional[List[PyObjectId]] = None
    parent_ids: Optional[List[PyObjectId]] = None
    child_ids_to_add: List[PyObjectId] = []
    child_ids_to_remove: List[PyObjectId] = []
    parent_ids_to_add: List[PyObjectId] = []
    parent_ids_to_remove: List[PyObjectId] = []
    with_regen: bool = True
    notify: bool = True

    @field_validator("label")
    @classmethod
    def check_label(cls, value):
        return _clean_label(value)

    @model_validator(mode="after")
    def check_adjacency(self):
        for side in ("child_ids", "parent_ids"):
            to_add = getattr(self, f"{side}_to_add")
            to_remove = getattr(self, f"{side}_to_remove")
            if getattr(self, side) is not None and (to_add or to_remove):
                raise ValueError(f"{side} given both as a full list and as a delta")
            both = _overlap(to_add, to_remove)
            if both:
                raise ValueError(f"{side}: ids both added and removed: {[str(i) for i in both]}")
        return self

    def attribute_updates(self) -> Dict[str, Any]:
        """Attributes the caller explicitly passed (a passed None clears the value)."""
        updates = {k: getattr(self, k) for k in ("label", "aliases", "regex", "category_id")
                   if k in self.model_fields_set}
        if updates.get("label", "") is None:
            raise TagValidationError("Label must not be blank")
        if "aliases" in updates and updates["aliases"] is None:
            updates["aliases"] = []
        return updates

    def referenced_ids(self) -> List[ObjectId]:
        ids = [*(self.child_ids or []), *(self.parent_ids or []),
               *self.child_ids_to_add, *self.child_ids_to_remove,
               *self.parent_ids_to_add, *self.parent_ids_to_remove]
        return list(dict.fromkeys(ids))


class EditMultiTagRelationsInput(_Input):
    tag_ids: List[PyObjectId] = Field(min_length=1)
    child_ids_to_add: List[PyObjectId] = []
    child_ids_to_remove: List[PyObjectId] = []
    parent_ids_to_add: List[PyObjectId] = []
    parent_ids_to_remove: List[PyObjectId] = []
    notify: bool = True

    @model_validator(mode="after")
    def check_overlap(self):
        for side in ("child_ids", "parent_ids"):
            both = _overlap(getattr(self, f"{side}_to_add"), getattr(self, f"{side}_to_remove"))
            if both:
                raise ValueError(f"{side}: ids both added and removed: {[str(i) for i in both]}")
        return self

    def referenced_ids(self) -> List[ObjectId]:
        ids = [*self.tag_ids, *self.child_ids_to_add, *self.child_ids_to_remove,
               *self.parent_ids_to_add, *self.parent_ids_to_remove]
        return list(dict.fromkeys(ids))


class MergeTagsInput(_Input):
    tag_id_to_keep: PyObjectId
    tag_id_to_merge: PyObjectId
    label: Optional[str] = None
    aliases: Optional[List[str]] = None
    regex: Optional[str] = None
    category_id: Optional[PyObjectId] = None
    child_ids: Optional[List[PyObjectId]] = None
    parent_ids: Optional[List[PyObjectId]] = None

    @field_validator("label")
    @classmethod
    def check_label(cls, value):
        return _clean_label(value)

    @model_validator(mode="after")
    def check_distinct(self):
        if self.tag_id_to_keep == self.tag_id_to_merge:
            raise ValueError("Cannot merge a tag into itself")
        return self

    def overrides(self) -> Dict[str, Any]:
        keys = ("label", "aliases", "regex", "category_id", "child_ids", "parent_ids")
        out = {k: getattr(self, k) for k in keys if k in self.model_fields_set}
        return {k: v for k, v in out.items() if v is not None or k in ("regex", "category_id")}


class EditFileTagsInput(_Input):
    file_ids: List[PyObjectId] = Field(min_length=1)
    added_tag_ids: List[PyObjectId] = []
    removed_tag_ids: List[PyObjectId] = []
    batch_id: Optional[PyObjectId] = None
    notify: bool = True

    @model_validator(mode="after")
    def check_overlap(self):
        both = _overlap(self.added_tag_ids, self.removed_tag_ids)
        if both:
            raise ValueError(f"Tag ids both added and removed: {[str(i) for i in both]}")
        return self
