"""
Characteristic definitions and the per-listing typed values.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from property_sync_service.models.characteristic import (
    Characteristic,
    CharacteristicTypeEnum,
    ListingCharacteristicValue,
)
from property_sync_service.schemas.listing_payload import (
    CENTS,
    MAX_AMOUNT,
    CharacteristicPayload,
    parse_bool,
    parse_decimal,
)
from property_sync_service.utils.db_utils import dialect_name, insert_ignore
from property_sync_service.utils.logging_config import logger

BOOLEAN_WORDS = {"si", "sí", "no", "true", "false"}

DECLARED_TYPES = {
    "boolean": CharacteristicTypeEnum.BOOLEAN,
    "booleano": CharacteristicTypeEnum.BOOLEAN,
    "bool": CharacteristicTypeEnum.BOOLEAN,
    "numeric": CharacteristicTypeEnum.NUMERIC,
    "numerico": CharacteristicTypeEnum.NUMERIC,
    "numérico": CharacteristicTypeEnum.NUMERIC,
    "number": CharacteristicTypeEnum.NUMERIC,
    "text": CharacteristicTypeEnum.TEXT,
    "texto": CharacteristicTypeEnum.TEXT,
}


def declared_type(value_type: Optional[str]) -> Optional[CharacteristicTypeEnum]:
    if not value_type:
        return None
    return DECLARED_TYPES.get(value_type.strip().lower())


def infer_type(value: Any) -> CharacteristicTypeEnum:
    if isinstance(value, bool):
        return CharacteristicTypeEnum.BOOLEAN
    if isinstance(value, str) and value.strip().lower() in BOOLEAN_WORDS:
        return CharacteristicTypeEnum.BOOLEAN
    if _numeric(value) is not None:
        return CharacteristicTypeEnum.NUMERIC
    return CharacteristicTypeEnum.TEXT


def _numeric(value: Any) -> Optional[Decimal]:
    number = parse_decimal(value)
    if number is None or abs(number) >= MAX_AMOUNT:
        return None
    return number.quantize(CENTS)


def fits_type(value: Any, value_type: CharacteristicTypeEnum) -> bool:
    if value is None or (isinstance(value, str) and not value.strip()):
        return True
    if value_type == CharacteristicTypeEnum.BOOLEAN:
        return parse_bool(value) is not None
    if value_type == CharacteristicTypeEnum.NUMERIC:
        return _numeric(value) is not None
    return True


def typed_columns(value: Any, value_type: CharacteristicTypeEnum) -> Dict[str, Any]:
    """Column values of a ListingCharacteristicValue for ``value``."""
    text = None if value is None else str(value).strip()
    columns = {"text_value": text or None, "numeric_value": None, "boolean_value": None}
    if value_type == CharacteristicTypeEnum.BOOLEAN:
        columns["boolean_value"] = parse_bool(value)
    elif value_type == CharacteristicTypeEnum.NUMERIC:
        columns["numeric_value"] = _numeric(value)
    return columns


def resolve_type(
    payload: CharacteristicPayload, stored: Optional[CharacteristicTypeEnum]
) -> CharacteristicTypeEnum:
    """
    Type a characteristic should have after seeing ``payload``.

    A declared type always wins. Otherwise a new definition takes the
    inferred type and an existing one keeps its type unless the value no
    longer fits, in which case it falls back to text.
    """
    declared = declared_type(payload.value_type)
    if declared is not None:
        return declared
    if stored is None:
        return infer_type(payload.value)
    if not fits_type(payload.value, stored):
        return CharacteristicTypeEnum.TEXT
    return stored


async def _load_definitions(
    session: AsyncSession, names: Sequence[str]
) -> Dict[str, Characteristic]:
    result = await session.execute(
        select(Characteristic).where(Characteristic.name.in_(names))
    )
    return {definition.name: definition for definition in result.scalars().all()}


async def replace_listing_characteristics(
    session: AsyncSession,
    listing_id: int,
    characteristics: List[CharacteristicPayload],
) -> int:
    """Delete the listing's characteristic values and insert the current ones."""
    unique: Dict[str, CharacteristicPayload] = {}
    for item in characteristics:
        unique.setdefault(item.name[:255], item)

    await session.execute(
        delete(ListingCharacteristicValue).where(
            ListingCharacteristicValue.listing_id == listing_id
        )
    )
    if not unique:
        return 0

    definitions = await _load_definitions(session, list(unique))
    missing = [name for name in unique if name not in definitions]
    if missing:
        dialect = dialect_name(session)
        for name in missing:
            payload = unique[name]
            await session.execute(
                insert_ignore(
                    Characteristic,
                    dialect,
                    {
                        "name": name,
                        "value_type": resolve_type(payload, None),
                        "unit": payload.unit,
                    },
                    ["name"],
                )
            )
        definitions.update(await _load_definitions(session, missing))

    by_folded_name = {key.casefold(): value for key, value in definitions.items()}
    for name, payload in unique.items():
        # Case-insensitive collations (MySQL) may return an existing spelling
        definition = definitions.get(name) or by_folded_name[name.casefold()]
        value_type = resolve_type(payload, definition.value_type)
        if value_type != definition.value_type:
            logger.info(
                f"Characteristic '{name}' type changed from "
                f"{definition.value_type.value} to {value_type.value}"
            )
            definition.value_type = value_type
        if payload.unit and not definition.unit:
            definition.unit = payload.unit
        session.add(
            ListingCharacteristicValue(
                listing_id=listing_id,
                characteristic_id=definition.id,
                **typed_columns(payload.value, value_type),
            )
        )
    return len(unique)
