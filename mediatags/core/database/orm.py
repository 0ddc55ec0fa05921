from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union
from bson import ObjectId
from loguru import logger
from .manager import db_manager

T = TypeVar('T', bound='CollectionRecord')

_MISSING = object()


# --- Field Descriptors ---

class Field:
    """Base class for all ORM fields."""
    def __init__(self, default: Any = None, default_factory: Optional[Callable[[], Any]] = None,
                 index: bool = False, unique: bool = False):
        self.name: str = None  # Set by metaclass
        self.default = default
        self.default_factory = default_factory
        self.index = index
        self.unique = unique

    def make_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default

    def __get__(self, instance, owner):
        if instance is None:
            return self
        value = instance.get_field_val(self.name, _MISSING)
        if value is _MISSING:
            # Materialize so in-place mutation of list defaults sticks
            value = self.make_default()
            instance._data_cache[self.name] = value
        return value

    def __set__(self, instance, value):
        instance.set_field_val(self.name, value)

    def to_mongo(self, value: Any) -> Any:
        return value

    def from_mongo(self, value: Any) -> Any:
        return value


class ListField(Field):
    """List of raw values (ObjectIds, strings). Stored missing/None reads back as []."""
    def __init__(self, **kwargs):
        super().__init__(default_factory=list, **kwargs)

    def to_mongo(self, value: Any) -> List:
        return list(value) if value else []

    def from_mongo(self, value: Any) -> List:
        return list(value) if value else []


# --- Metaclass & Record ---

class DbRecordMeta(type):
    """Metaclass to registry models and setup fields."""
    _registry: Dict[str, Type['CollectionRecord']] = {}

    def __new__(cls, name, bases, namespace, **kwargs):
        new_class = super().__new__(cls, name, bases, namespace)

        # 1. Register
        cls._registry[name] = new_class

        # 2. Setup _collection_name
        table = kwargs.get('table', None)
        if table:
            new_class._collection_name = table

        # 3. Harvest Fields (inherited first, own fields override)
        fields: Dict[str, Field] = {}
        for base in reversed(bases):
            fields.update(getattr(base, '_fields', {}))
        for k, v in namespace.items():
            if isinstance(v, Field):
                v.name = k
                fields[k] = v
        new_class._fields = fields

        # 4. Harvest Indices
        new_class._indexes = kwargs.get('indexes', getattr(new_class, '_indexes', []))

        return new_class


class CollectionRecord(metaclass=DbRecordMeta):
    _collection_name: str = None
    _fields: Dict[str, Field] = {}
    _indexes: List = []

    def __init__(self, oid: Union[str, ObjectId] = None, **kwargs):
        if oid is None:
            oid = ObjectId()
        self._id = ObjectId(oid)
        self._data_cache: Dict[str, Any] = {}
        self._non_array_fields: List[str] = []

        for k, v in kwargs.items():
            if k in ('_id', '_cls'):
                continue
            self._data_cache[k] = v

    @property
    def id(self) -> ObjectId:
        return self._id

    def get_field_val(self, name: str, default: Any = None):
        return self._data_cache.get(name, default)

    def set_field_val(self, name: str, value: Any):
        self._data_cache[name] = value

    def non_array_fields(self) -> List[str]:
        """List fields the loaded document lacked or stored as something other than an array."""
        return list(self._non_array_fields)

    def to_dict(self) -> Dict[str, Any]:
        """Serializes to MongoDB-ready dict."""
        out = {'_id': self._id, '_cls': self.__class__.__name__}

        for name, field in self._fields.items():
            out[name] = field.to_mongo(getattr(self, name))

        # Dynamic fields not in schema (legacy attributes survive a save)
        for k, v in self._data_cache.items():
            if k not in self._fields:
                out[k] = v
        return out

    @classmethod
    def from_doc(cls: Type[T], data: Optional[Dict]) -> Optional[T]:
        if not data:
            return None
        cls_name = data.get('_cls')
        target_cls = cls
        if cls_name and cls_name in DbRecordMeta._registry:
            target_cls = DbRecordMeta._registry[cls_name]

        processed_kwargs = {}
        for k, v in data.items():
            field = target_cls._fields.get(k)
            processed_kwargs[k] = field.from_mongo(v) if field else v

        record = target_cls(oid=data.get('_id'), **processed_kwargs)
        # ListFields read back as [] whatever was stored; remember which were not arrays
        record._non_array_fields = [
            name for name, field in target_cls._fields.items()
            if isinstance(field, ListField) and not isinstance(data.get(name), list)
        ]
        return record

    @classmethod
    def get_collection(cls):
        if not cls._collection_name:
            raise ValueError(f"Class {cls.__name__} must define _collection_name")
        return db_manager.get_collection(cls._collection_name)

    @classmethod
    async def ensure_indexes(cls):
        """Creates indexes defined in Fields and Meta."""
        coll = cls.get_collection()

        for name, field in cls._fields.items():
            if field.index or field.unique:
                logger.debug(f"Creating index for {cls.__name__}.{name} (unique={field.unique})")
                await coll.create_index([(name, 1)], unique=field.unique)

        for idx in cls._indexes:
            logger.debug(f"Creating compound index for {cls.__name__}: {idx}")
            await coll.create_index(idx)

    @classmethod
    async def find(cls: Type[T], query: Dict, projection: Optional[Dict] = None,
                   sort: Optional[List] = None, limit: int = 0) -> List[T]:
        cursor = cls.get_collection().find(query, projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        results = []
        async for doc in cursor:
            results.append(cls.from_doc(doc))
        return results

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._id}>"
