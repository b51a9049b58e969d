"""
Typed view of one raw listing object from the source API.

The feed is an untyped external contract: field names vary between the
documented names and the source's native ones, numbers arrive as strings and
unknown keys appear without notice. Parsing is lenient per field; only a
missing ``ref`` makes a listing unusable.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

TRUE_STRINGS = {"true", "si", "sí", "yes", "1", "s", "y"}
FALSE_STRINGS = {"false", "no", "0", "n"}

# Characteristic some feeds use instead of a garages field
GARAGES_CHARACTERISTIC = "NUM PARQUEADEROS"

CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("1e13")


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a loosely formatted number, returning None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip().replace(" ", "")
        if not text:
            return None
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        else:
            text = text.replace(",", "")
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def parse_bool(value: Any) -> Optional[bool]:
    """Parse booleans as the feed writes them ("Si", "true", 1...)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    return None


class ImagePayload(BaseModel):
    """One entry of ``imagenes``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str = Field(..., validation_alias=AliasChoices("url", "imagen", "src"))
    orden: Optional[int] = Field(None, description="Position supplied by the source")
    es_principal: bool = Field(False, description="Source's own primary marker")

    @field_validator("url", mode="before")
    @classmethod
    def strip_url(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("orden", mode="before")
    @classmethod
    def parse_orden(cls, v: Any) -> Optional[int]:
        number = parse_decimal(v)
        return int(number) if number is not None else None

    @field_validator("es_principal", mode="before")
    @classmethod
    def parse_es_principal(cls, v: Any) -> bool:
        return bool(parse_bool(v))


class CharacteristicPayload(BaseModel):
    """One entry of ``caracteristicas``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., validation_alias=AliasChoices("nombre", "name"))
    value: Any = Field(None, validation_alias=AliasChoices("valor", "value"))
    value_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("tipo", "value_type")
    )
    unit: Optional[str] = Field(None, validation_alias=AliasChoices("unidad", "unit"))

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("value_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Optional[str]:
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip().lower()


class ListingPayload(BaseModel):
    """A listing as the reconciliation engine sees it."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ref: int
    sync_code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "codigo_sincronizacion", "codigo_consignacion_sincronizacion", "sync_code"
        ),
    )

    # Free text
    title: str = Field("", validation_alias=AliasChoices("titulo", "title"))
    description: str = Field(
        "",
        validation_alias=AliasChoices(
            "descripcion", "observacion_portales", "observacion", "description"
        ),
    )
    short_description: str = Field(
        "",
        validation_alias=AliasChoices(
            "descripcion_corta", "observacion", "short_description"
        ),
    )
    address: str = Field("", validation_alias=AliasChoices("direccion", "address"))

    # Catalog values, resolved to ids by the engine
    city: Optional[str] = Field(None, validation_alias=AliasChoices("ciudad", "city"))
    neighborhood: Optional[str] = Field(
        None, validation_alias=AliasChoices("barrio", "neighborhood")
    )
    property_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("tipo_inmueble", "property_type")
    )
    use: Optional[str] = Field(None, validation_alias=AliasChoices("uso", "use"))
    status: Optional[str] = Field(
        None, validation_alias=AliasChoices("estado_actual", "status")
    )
    consignment_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("tipo_consignacion", "consignment_type")
    )
    advisor: Optional[str] = Field(
        None, validation_alias=AliasChoices("asesor_nombre", "asesor", "advisor")
    )

    # Physical attributes
    area: Decimal = Field(
        Decimal("0"), validation_alias=AliasChoices("area", "area_total")
    )
    built_area: Decimal = Field(
        Decimal("0"),
        validation_alias=AliasChoices("area_construida", "area_total", "built_area"),
    )
    private_area: Decimal = Field(
        Decimal("0"), validation_alias=AliasChoices("area_privada", "private_area")
    )
    land_area: Decimal = Field(
        Decimal("0"), validation_alias=AliasChoices("area_terreno", "land_area")
    )
    bedrooms: int = Field(
        0, validation_alias=AliasChoices("habitaciones", "alcobas", "bedrooms")
    )
    bathrooms: int = Field(
        0, validation_alias=AliasChoices("banos", "baños", "bathrooms")
    )
    garages: int = Field(0, validation_alias=AliasChoices("garajes", "garages"))
    stratum: int = Field(0, validation_alias=AliasChoices("estrato", "stratum"))

    # Prices
    sale_price: Decimal = Field(
        Decimal("0"),
        validation_alias=AliasChoices("precio_venta", "valor_venta", "sale_price"),
    )
    rent_price: Decimal = Field(
        Decimal("0"),
        validation_alias=AliasChoices("precio_canon", "valor_canon", "rent_price"),
    )
    admin_fee: Decimal = Field(
        Decimal("0"),
        validation_alias=AliasChoices(
            "precio_administracion", "valor_admon", "admin_fee"
        ),
    )

    # Coordinates stay strings; the source sends both numbers and text
    latitude: Optional[str] = Field(
        None, validation_alias=AliasChoices("latitud", "latitude")
    )
    longitude: Optional[str] = Field(
        None, validation_alias=AliasChoices("longitud", "longitude")
    )

    images: List[ImagePayload] = Field(
        default_factory=list, validation_alias=AliasChoices("imagenes", "images")
    )
    characteristics: List[CharacteristicPayload] = Field(
        default_factory=list,
        validation_alias=AliasChoices("caracteristicas", "characteristics"),
    )

    raw_extra: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def collect_extra(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "garajes" not in data and "garages" not in data:
            for item in data.get("caracteristicas") or []:
                if isinstance(item, dict) and item.get("nombre") == GARAGES_CHARACTERISTIC:
                    data["garajes"] = item.get("valor")
                    break
        data["raw_extra"] = {
            key: value for key, value in data.items() if key not in KNOWN_KEYS
        }
        return data

    @field_validator("ref", mode="before")
    @classmethod
    def parse_ref(cls, v: Any) -> Any:
        number = parse_decimal(v)
        if number is None or number != number.to_integral_value() or number <= 0:
            raise ValueError(f"Invalid listing ref: {v!r}")
        return int(number)

    @field_validator("sync_code", mode="before")
    @classmethod
    def parse_sync_code(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()[:100]
        return text or None

    @field_validator(
        "title",
        "description",
        "short_description",
        "address",
        mode="before",
    )
    @classmethod
    def parse_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator(
        "city",
        "neighborhood",
        "property_type",
        "use",
        "status",
        "consignment_type",
        "advisor",
        mode="before",
    )
    @classmethod
    def parse_catalog_value(cls, v: Any) -> Optional[str]:
        if isinstance(v, dict):
            v = v.get("nombre") or v.get("name")
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator(
        "area",
        "built_area",
        "private_area",
        "land_area",
        "sale_price",
        "rent_price",
        "admin_fee",
        mode="before",
    )
    @classmethod
    def parse_amount(cls, v: Any) -> Decimal:
        number = parse_decimal(v)
        if number is None or abs(number) >= MAX_AMOUNT:
            return Decimal("0")
        # Stored as NUMERIC(15, 2)
        return number.quantize(CENTS)

    @field_validator("bedrooms", "bathrooms", "garages", "stratum", mode="before")
    @classmethod
    def parse_count(cls, v: Any) -> int:
        number = parse_decimal(v)
        return int(number) if number is not None else 0

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def parse_coordinate(cls, v: Any) -> Optional[str]:
        number = parse_decimal(v)
        if number is None:
            return None
        return str(v).strip() if isinstance(v, str) else str(number)

    @field_validator("images", mode="before")
    @classmethod
    def parse_images(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        images = []
        for item in v:
            if isinstance(item, str):
                item = {"url": item}
            if not isinstance(item, dict):
                continue
            url = item.get("url") or item.get("imagen") or item.get("src")
            if isinstance(url, str) and url.strip():
                # The first non-empty key wins, not the first present one
                images.append({**item, "url": url.strip()})
        return images

    @field_validator("characteristics", mode="before")
    @classmethod
    def parse_characteristics(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        return [
            item
            for item in v
            if isinstance(item, dict)
            and str(item.get("nombre") or item.get("name") or "").strip()
        ]

    def ordered_images(self) -> List[ImagePayload]:
        """
        Images in slot order.

        When every image carries ``orden`` they are stable-sorted by it,
        otherwise the feed order is kept.
        """
        if self.images and all(image.orden is not None for image in self.images):
            return sorted(self.images, key=lambda image: image.orden)
        return list(self.images)


def _field_keys(model) -> set:
    keys = set()
    for name, field in model.model_fields.items():
        keys.add(name)
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            keys.update(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            keys.add(alias)
    return keys


KNOWN_KEYS = frozenset(_field_keys(ListingPayload))


class ApiFilters(BaseModel):
    """Filters forwarded to the source API as ``{"filtros": {...}}``."""

    model_config = ConfigDict(populate_by_name=True)

    ref: Optional[int] = Field(None, description="Single listing reference")
    sync_code: Optional[str] = Field(None, description="Sync code of one listing")
    use_id: Optional[int] = Field(None, description="Source use id")
    status_ids_csv: Optional[str] = Field(
        None, description="Comma separated source status ids"
    )
    city: Optional[str] = Field(None, description="City name")
    extra: Dict[str, Any] = Field(
        default_factory=dict, description="Passed through unchanged"
    )

    def to_filtros(self) -> Dict[str, Any]:
        filtros: Dict[str, Any] = dict(self.extra)
        mapping = {
            "ref": self.ref,
            "codigo_sincronizacion": self.sync_code,
            "uso_id": self.use_id,
            "estado_actual_in": self.status_ids_csv,
            "ciudad": self.city,
        }
        filtros.update({key: value for key, value in mapping.items() if value is not None})
        return filtros

    def is_empty(self) -> bool:
        return not self.to_filtros()
