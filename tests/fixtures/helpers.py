"""
Helper fixtures for building listing payloads and querying the test database.
"""

from typing import Any, Dict, List

import pytest
from sqlalchemy import func, select


@pytest.fixture
def listing_factory():
    """Helper fixture building raw listing objects as the source API sends them."""

    def _listing_factory(ref: int = 261, **overrides: Any) -> Dict[str, Any]:
        listing = {
            "ref": ref,
            "codigo_sincronizacion": None,
            "ciudad": "Bogotá",
            "barrio": "Chapinero",
            "tipo_inmueble": "Apartamento",
            "uso": "Vivienda",
            "estado_actual": "Venta",
            "area": 85,
            "habitaciones": 3,
            "banos": 2,
            "garajes": 1,
            "estrato": 4,
            "precio_venta": 200000000,
            "precio_canon": 0,
            "precio_administracion": 350000,
            "descripcion": f"Apartamento de prueba {ref}",
            "latitud": "4.6486",
            "longitud": "-74.0628",
            "direccion": f"Calle {ref} # 10-20",
            "imagenes": [],
            "caracteristicas": [],
        }
        listing.update(overrides)
        return listing

    return _listing_factory


@pytest.fixture
def fetch_all(session_factory):
    """Return every row of a model, ordered by primary key."""

    async def _fetch_all(model, *criteria) -> List[Any]:
        async with session_factory() as session:
            result = await session.execute(
                select(model).where(*criteria).order_by(model.id)
            )
            return list(result.scalars().all())

    return _fetch_all


@pytest.fixture
def count_rows(session_factory):
    async def _count_rows(model, *criteria) -> int:
        async with session_factory() as session:
            return await session.scalar(
                select(func.count()).select_from(model).where(*criteria)
            )

    return _count_rows
