"""
Bind compilation: parameter descriptors to finalized SQL and bind contracts.

    Descriptors + SQL → Validate → Coerce values → Expand IN lists → CompiledStatement

Each descriptor compiles independently. IN-list descriptors produce one
generated IN bind per list token and rewrite their placeholder in the SQL;
every other descriptor produces exactly one bind under its own name.
"""
import logging
import secrets
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

import dateutil.parser
from oraclebinds.exceptions import TypeConversionError, ValidationError
from oraclebinds.options import DEFAULT_MAX_SIZE
from oraclebinds.sql import bind_key, expand_placeholder
from oraclebinds.types import BindContract, CompiledStatement, DataType
from oraclebinds.types import Direction, ParameterDescriptor, WireType

logger = logging.getLogger(__name__)

__all__ = [
    'compile_binds',
    'coerce_value',
    'resolve_max_size',
    'split_in_list',
    'generate_bind_names',
    'wire_type_for',
]

_WIRE_TYPES = {
    DataType.STRING: WireType.STRING,
    DataType.NUMBER: WireType.NUMBER,
    DataType.DATE: WireType.DATE,
    DataType.CURSOR: WireType.CURSOR,
}

# Hex bytes in the random part of generated bind names
_TOKEN_BYTES = 4


def wire_type_for(datatype: DataType) -> WireType:
    """Return the wire type for a declared datatype."""
    return _WIRE_TYPES[datatype]


def _parse_number(text: str, name: str) -> int | Decimal:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise TypeConversionError(f'Parameter "{name}" value {text!r} is not a number') from None
    if not number.is_finite():
        raise TypeConversionError(f'Parameter "{name}" value {text!r} is not a finite number')
    return number


def _parse_date(text: str, name: str):
    try:
        return dateutil.parser.parse(text)
    except (ValueError, OverflowError) as err:
        raise TypeConversionError(f'Parameter "{name}" value {text!r} is not a date: {err}') from err


def coerce_value(raw: Any, datatype: DataType, name: str = 'value') -> Any:
    """Convert raw parameter text to the native value for its datatype.

    Numbers parse to int when the text is integral, otherwise to Decimal.
    Dates parse with dateutil. Strings pass through unchanged. Cursors carry
    no value.

    Raises
        ValidationError: when a value is required but missing
        TypeConversionError: when the text cannot be parsed
    """
    if datatype is DataType.CURSOR:
        return None
    if raw is None:
        raise ValidationError(f'Parameter "{name}" requires a value')

    text = str(raw)
    if datatype is DataType.STRING:
        return text
    if datatype is DataType.NUMBER:
        return _parse_number(text.strip(), name)
    return _parse_date(text.strip(), name)


def resolve_max_size(max_size: Any, default: int = DEFAULT_MAX_SIZE) -> int:
    """Return the output buffer size, falling back to default when unset,
    non-numeric or not positive.
    """
    if isinstance(max_size, bool):
        return default
    try:
        size = int(float(max_size))
    except (TypeError, ValueError, OverflowError):
        return default
    return size if size > 0 else default


def split_in_list(value: Any) -> list[str]:
    """Split a comma-separated value into trimmed, non-empty tokens."""
    return [v.strip() for v in str(value or '').split(',') if v.strip()]


def generate_bind_names(name: str, count: int, taken: set[str]) -> list[str]:
    """Generate count bind names derived from name that avoid every key in taken.

    Names look like `<name>_<random hex>_<n>`. The random part is redrawn
    until no generated name collides. Generated keys are added to taken.
    """
    while True:
        token = secrets.token_hex(_TOKEN_BYTES)
        names = [f'{name}_{token}_{i}' for i in range(1, count + 1)]
        keys = {bind_key(n) for n in names}
        if keys.isdisjoint(taken):
            taken.update(keys)
            return names


def _as_descriptor(param: ParameterDescriptor | Mapping[str, Any]) -> ParameterDescriptor:
    if isinstance(param, ParameterDescriptor):
        return param
    if isinstance(param, Mapping):
        return ParameterDescriptor.from_dict(param)
    raise ValidationError(f'Unsupported parameter description: {param!r}')


def _compile_in_list(param: ParameterDescriptor, sql: str,
                     taken: set[str]) -> tuple[str, dict[str, BindContract]]:
    if param.direction is not Direction.IN:
        raise ValidationError(
            f'Parameter "{param.name}" uses IN list expansion but direction is {param.direction.name}'
        )
    if param.datatype is DataType.CURSOR:
        raise ValidationError(f'Parameter "{param.name}" cannot be CURSOR with IN list expansion')
    if param.name.startswith('"'):
        raise ValidationError(f'Parameter {param.name} is quoted and cannot be expanded into an IN list')

    tokens = split_in_list(param.value)
    if not tokens:
        raise ValidationError(f'Parameter "{param.name}" has no values for IN list')

    wire_type = wire_type_for(param.datatype)
    values = [coerce_value(v, param.datatype, param.name) for v in tokens]
    names = generate_bind_names(param.name, len(tokens), taken)
    binds = {n: BindContract(Direction.IN, wire_type, value=v) for n, v in zip(names, values)}

    sql, replaced = expand_placeholder(sql, param.name, names)
    if not replaced:
        logger.warning(f'IN list parameter {param.placeholder} does not occur in the SQL')
    else:
        logger.debug(f'Expanded {param.placeholder} into {len(names)} binds ({replaced} occurrence(s))')
    return sql, binds


def _compile_single(param: ParameterDescriptor, default_max_size: int) -> BindContract:
    wire_type = wire_type_for(param.datatype)

    if param.direction is Direction.IN:
        if param.datatype is DataType.CURSOR:
            raise ValidationError(f'Parameter "{param.name}" cannot be CURSOR with IN direction')
        return BindContract(Direction.IN, wire_type,
                            value=coerce_value(param.value, param.datatype, param.name))

    max_size = None
    if wire_type is WireType.STRING:
        max_size = resolve_max_size(param.max_output_size, default_max_size)

    if param.direction is Direction.OUT:
        return BindContract(Direction.OUT, wire_type, max_size=max_size)

    if param.datatype is DataType.CURSOR:
        raise ValidationError(f'Parameter "{param.name}" cannot be CURSOR with IN OUT direction')
    return BindContract(Direction.INOUT, wire_type,
                        value=coerce_value(param.value, param.datatype, param.name),
                        max_size=max_size)


def compile_binds(sql: str,
                  params: Iterable[ParameterDescriptor | Mapping[str, Any]] | None,
                  default_max_size: int = DEFAULT_MAX_SIZE) -> CompiledStatement:
    """Compile parameter descriptors into finalized SQL and bind contracts.

    Parameters
        sql: SQL text with `:name` placeholders
        params: descriptors, or host mappings accepted by ParameterDescriptor.from_dict
        default_max_size: buffer size for string OUT/INOUT binds without one

    Returns
        CompiledStatement with rewritten SQL and a name → BindContract mapping

    Raises
        ValidationError: for any invalid descriptor; nothing is returned partially
    """
    if not sql or not str(sql).strip():
        raise ValidationError('SQL statement must not be empty')

    descriptors = [_as_descriptor(p) for p in (params or [])]

    taken: set[str] = set()
    for param in descriptors:
        key = bind_key(param.name)
        if key in taken:
            raise ValidationError(f'Parameter "{param.name}" is declared more than once')
        taken.add(key)

    binds: dict[str, BindContract] = {}
    for param in descriptors:
        if param.expand_for_in_list:
            sql, generated = _compile_in_list(param, sql, taken)
            binds.update(generated)
        else:
            binds[param.name] = _compile_single(param, default_max_size)

    logger.debug(f'Compiled {len(descriptors)} parameters into {len(binds)} binds')
    return CompiledStatement(sql=sql, binds=binds)
