"""
Data types shared by the bind compiler, the executor and the result normalizer.

This module provides:
- Direction, DataType, WireType: closed enumerations of bind semantics
- ParameterDescriptor: one declared statement parameter, as supplied by the host
- BindContract / CompiledStatement: output of the bind compiler
- CursorHandle: driver cursor returned through an OUT bind
- RawResult / StatementResult: executor envelope and normalized record
- Column: column metadata from cursor descriptions
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Self

from oraclebinds.exceptions import ValidationError

from libb import attrdict

logger = logging.getLogger(__name__)

OUT_FORMAT_OBJECT = 'object'
OUT_FORMAT_ARRAY = 'array'
OUT_FORMATS = (OUT_FORMAT_OBJECT, OUT_FORMAT_ARRAY)

_TRUTHY_STRINGS = {'true', 'yes', 'y', '1', 'on'}


class Direction(Enum):
    """Bind direction as declared by the host."""
    IN = 'in'
    OUT = 'out'
    INOUT = 'inout'


class DataType(Enum):
    """Parameter datatype as declared by the host."""
    STRING = 'string'
    NUMBER = 'number'
    DATE = 'date'
    CURSOR = 'cursor'


class WireType(Enum):
    """Bind type on the wire, mapped to driver types by the executor only."""
    STRING = auto()
    NUMBER = auto()
    DATE = auto()
    CURSOR = auto()


def _parse_choice(enum_cls: type[Enum], value: Any, what: str, name: str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = ', '.join(m.value for m in enum_cls)
        raise ValidationError(
            f'Parameter "{name}" has invalid {what} {value!r} (expected one of: {choices})'
        ) from None


def _parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return bool(value)


@dataclass(frozen=True, slots=True)
class ParameterDescriptor:
    """One named statement parameter.

    The descriptor is immutable; the bind compiler never changes it.

    Parameters
        name: bind name as referenced in SQL (``:name``), without the colon
        datatype: string, number, date or cursor
        direction: in, out or inout
        value: raw text, required for in and inout
        expand_for_in_list: treat ``value`` as a comma-separated IN list
        max_output_size: buffer size for string out/inout binds
    """
    name: str
    datatype: DataType = DataType.STRING
    direction: Direction = Direction.IN
    value: str | None = None
    expand_for_in_list: bool = False
    max_output_size: Any = None

    def __post_init__(self) -> None:
        name = (self.name or '').strip() if isinstance(self.name, str) else ''
        if not name:
            raise ValidationError('Parameter name must not be empty')
        if name.startswith(':'):
            raise ValidationError(f'Parameter "{name}" must not start with ":"')
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'datatype', _parse_choice(DataType, self.datatype, 'datatype', name))
        object.__setattr__(self, 'direction', _parse_choice(Direction, self.direction, 'direction', name))
        object.__setattr__(self, 'expand_for_in_list', _parse_flag(self.expand_for_in_list))

    @classmethod
    def from_dict(cls, item: Mapping[str, Any]) -> Self:
        """Build a descriptor from a host-supplied mapping.

        Accepts camelCase keys (``expandForInList``, ``maxOutputSize``) as well as
        the host form keys ``parseInStatement`` and ``maxSize``.
        """
        expand = item.get('expandForInList', item.get('parseInStatement', False))
        max_size = item.get('maxOutputSize', item.get('maxSize'))
        value = item.get('value')
        return cls(
            name=item.get('name'),
            datatype=item.get('datatype', DataType.STRING),
            direction=item.get('direction', Direction.IN),
            value=None if value is None else str(value),
            expand_for_in_list=expand,
            max_output_size=max_size,
        )

    @property
    def placeholder(self) -> str:
        return f':{self.name}'


@dataclass(frozen=True, slots=True)
class BindContract:
    """Fully specified bind, ready to hand to an executor."""
    direction: Direction
    wire_type: WireType
    value: Any = None
    max_size: int | None = None

    def __post_init__(self) -> None:
        if self.wire_type is WireType.CURSOR and self.direction is not Direction.OUT:
            raise ValidationError('Cursor binds are output-only')

    @property
    def has_value(self) -> bool:
        return self.direction in {Direction.IN, Direction.INOUT}


@dataclass(slots=True)
class CompiledStatement:
    """Finalized SQL text and its bind mapping."""
    sql: str
    binds: dict[str, BindContract] = field(default_factory=dict)


@dataclass(slots=True)
class ExecuteOptions:
    """Options passed from the orchestrator to an executor."""
    out_format: str = OUT_FORMAT_OBJECT
    auto_commit: bool = True
    max_rows: int = 0


class DictRowFactory:
    """Row factory for oracledb cursors that returns dictionary rows."""

    def __init__(self, description: Any) -> None:
        self.fields = [item[0] for item in (description or [])]

    def __call__(self, *values: Any) -> dict:
        return dict(zip(self.fields, values))


class CursorHandle:
    """A result set returned through an OUT bind.

    Wraps the driver cursor so the normalizer can recognize cursors by type.
    Release happens at most once.
    """

    def __init__(self, cursor: Any, out_format: str = OUT_FORMAT_OBJECT) -> None:
        self.cursor = cursor
        self.out_format = out_format
        self.closed = False

    def __repr__(self) -> str:
        return f'CursorHandle(closed={self.closed})'

    def fetch(self, size: int) -> list:
        """Fetch up to size rows in the configured row shape."""
        if self.out_format == OUT_FORMAT_OBJECT:
            self.cursor.rowfactory = DictRowFactory(self.cursor.description)
        return list(self.cursor.fetchmany(size))

    def close(self) -> None:
        """Release the cursor."""
        if self.closed:
            return
        self.closed = True
        self.cursor.close()


@dataclass(slots=True)
class RawResult:
    """Result envelope produced by an executor.

    `columns` is None for statements without a result set.
    """
    columns: list['Column'] | None = None
    rows: Any = None
    rows_affected: int | None = None
    last_row_id: str | None = None
    out_binds: Any = None


@dataclass(slots=True)
class StatementResult:
    """Normalized record for one statement execution."""
    meta_data: list[dict] | None = None
    rows: Any = None
    rows_affected: int | None = None
    last_row_id: str | None = None
    out_binds: Any = None

    def as_item(self) -> attrdict:
        """Render the record with its serialized field names."""
        return attrdict(
            metaData=self.meta_data,
            rows=self.rows,
            rowsAffected=self.rows_affected,
            lastRowId=self.last_row_id,
            outBinds=self.out_binds,
        )


class Column:
    """Database column metadata."""

    def __init__(self,
                 name: str,
                 type_code: Any = None,
                 display_size: int | None = None,
                 internal_size: int | None = None,
                 precision: int | None = None,
                 scale: int | None = None,
                 nullable: bool | None = None):
        self.name = name
        self.type_code = type_code
        self.display_size = display_size
        self.internal_size = internal_size
        self.precision = precision
        self.scale = scale
        self.nullable = nullable

    @classmethod
    def from_cursor_description(cls, description_item: Any) -> Self:
        """Create a Column from a DB-API description item."""
        item = tuple(description_item)
        item += (None,) * (7 - len(item))
        return cls(
            name=item[0],
            type_code=item[1],
            display_size=item[2],
            internal_size=item[3],
            precision=item[4],
            scale=item[5],
            nullable=None if item[6] is None else bool(item[6]),
        )

    def __repr__(self) -> str:
        return f'Column(name={self.name!r}, type={self.db_type!r})'

    @property
    def db_type(self) -> str | None:
        if self.type_code is None:
            return None
        return getattr(self.type_code, 'name', str(self.type_code))

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'dbType': self.db_type,
            'size': self.internal_size,
            'precision': self.precision,
            'scale': self.scale,
            'nullable': self.nullable,
        }

    @staticmethod
    def get_names(columns: list[Self]) -> list[str]:
        return [col.name for col in columns]


def columns_from_cursor_description(cursor: Any) -> list[Column]:
    """Extract column metadata from a cursor that has a result set."""
    if cursor.description is None:
        return []
    return [Column.from_cursor_description(item) for item in cursor.description]
