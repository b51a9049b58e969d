"""
Integration tests for catalog resolution and characteristic storage.
"""

import asyncio
from decimal import Decimal

import pytest

from property_sync_service.crud.catalog_crud import CatalogResolver, RunCache, seed_catalogs
from property_sync_service.db import init_models
from property_sync_service.models import (
    DEFAULT_ADVISOR_NAME,
    UNSPECIFIED_CATALOG_NAME,
    Advisor,
    CatalogName,
    Characteristic,
    CharacteristicTypeEnum,
    City,
    ConsignmentType,
    Listing,
    ListingCharacteristicValue,
    PropertyUse,
)
from property_sync_service.schemas.sync import SyncOptions


class TestCatalogResolver:
    @pytest.mark.asyncio
    async def test_creates_once_and_caches(self, session_factory, fetch_all):
        cache = RunCache()
        resolver = CatalogResolver(session_factory, cache)

        first = await resolver.resolve(CatalogName.CITY, " Medellín ")
        second = await resolver.resolve(CatalogName.CITY, "Medellín")

        assert first == second
        assert cache.catalog_ids[(CatalogName.CITY, "Medellín")] == first
        assert [city.name for city in await fetch_all(City)] == ["Medellín"]

    @pytest.mark.asyncio
    async def test_concurrent_resolution_yields_one_row(self, session_factory, fetch_all):
        resolver = CatalogResolver(session_factory, RunCache())

        ids = await asyncio.gather(
            *(resolver.resolve(CatalogName.USE, "Vivienda") for _ in range(5))
        )

        assert len(set(ids)) == 1
        assert len(await fetch_all(PropertyUse)) == 1

    @pytest.mark.asyncio
    async def test_existing_row_is_reused_across_runs(self, session_factory, fetch_all):
        first = await CatalogResolver(session_factory, RunCache()).resolve(
            CatalogName.CITY, "Cali"
        )
        second = await CatalogResolver(session_factory, RunCache()).resolve(
            CatalogName.CITY, "Cali"
        )
        assert first == second
        assert len(await fetch_all(City)) == 1

    @pytest.mark.asyncio
    async def test_seeded_rows_are_inserted_once(self, session_factory, fetch_all):
        for _ in range(2):
            async with session_factory() as session:
                await seed_catalogs(session)
                await session.commit()

        assert [t.name for t in await fetch_all(ConsignmentType)] == [
            "Venta",
            "Arriendo",
            "Venta y Arriendo",
        ]
        advisors = await fetch_all(Advisor)
        assert [(a.name, a.active) for a in advisors] == [(DEFAULT_ADVISOR_NAME, True)]

    @pytest.mark.asyncio
    async def test_init_models_seeds_an_existing_schema(self, db_engine, fetch_all):
        await init_models(db_engine)
        assert len(await fetch_all(ConsignmentType)) == 3

    @pytest.mark.asyncio
    async def test_blank_advisor_resolves_to_the_office(self, session_factory, fetch_all):
        async with session_factory() as session:
            await seed_catalogs(session)
            await session.commit()
        resolver = CatalogResolver(session_factory, RunCache())

        office_id = await resolver.resolve(CatalogName.ADVISOR, None)
        named_id = await resolver.resolve(CatalogName.ADVISOR, "Ana")
        consignment_id = await resolver.resolve(CatalogName.CONSIGNMENT_TYPE, "")

        advisors = {a.id: a.name for a in await fetch_all(Advisor)}
        assert advisors[office_id] == DEFAULT_ADVISOR_NAME
        assert advisors[named_id] == "Ana"
        assert len(advisors) == 2
        types = {t.id: t.name for t in await fetch_all(ConsignmentType)}
        assert types[consignment_id] == UNSPECIFIED_CATALOG_NAME

    @pytest.mark.asyncio
    async def test_listing_links_advisor_and_consignment_type(
        self, reconciliation_engine, listing_factory, fetch_all
    ):
        await reconciliation_engine.process_batch(
            [
                listing_factory(1, tipo_consignacion="Arriendo"),
                listing_factory(2, asesor_nombre="Ana"),
            ],
            SyncOptions(download_images=False),
        )

        advisors = {a.name: a.id for a in await fetch_all(Advisor)}
        types = {t.name: t.id for t in await fetch_all(ConsignmentType)}
        first, second = sorted(await fetch_all(Listing), key=lambda listing: listing.ref)
        assert first.advisor_id == advisors[DEFAULT_ADVISOR_NAME]
        assert first.consignment_type_id == types["Arriendo"]
        assert second.advisor_id == advisors["Ana"]
        assert not first.raw_extra


class TestCharacteristics:
    @pytest.mark.asyncio
    async def test_values_are_typed_and_replaced(
        self, reconciliation_engine, listing_factory, fetch_all
    ):
        options = SyncOptions(download_images=False)
        await reconciliation_engine.process_batch(
            [
                listing_factory(
                    261,
                    caracteristicas=[
                        {"nombre": "Piscina", "valor": "Si"},
                        {"nombre": "Piso", "valor": "4"},
                        {"nombre": "Vista", "valor": "Exterior"},
                        {"nombre": "Piso", "valor": "5"},
                    ],
                )
            ],
            options,
        )

        definitions = {d.name: d for d in await fetch_all(Characteristic)}
        assert definitions["Piscina"].value_type == CharacteristicTypeEnum.BOOLEAN
        assert definitions["Piso"].value_type == CharacteristicTypeEnum.NUMERIC
        assert definitions["Vista"].value_type == CharacteristicTypeEnum.TEXT

        listing = (await fetch_all(Listing))[0]
        values = {
            v.characteristic_id: v
            for v in await fetch_all(
                ListingCharacteristicValue,
                ListingCharacteristicValue.listing_id == listing.id,
            )
        }
        assert len(values) == 3
        assert values[definitions["Piscina"].id].boolean_value is True
        assert values[definitions["Piso"].id].numeric_value == Decimal("4.00")

        # A later feed where "Piso" is no longer numeric and "Vista" is gone
        await reconciliation_engine.process_batch(
            [listing_factory(261, caracteristicas=[{"nombre": "Piso", "valor": "PH"}])],
            options,
        )

        definitions = {d.name: d for d in await fetch_all(Characteristic)}
        assert definitions["Piso"].value_type == CharacteristicTypeEnum.TEXT
        values = await fetch_all(
            ListingCharacteristicValue, ListingCharacteristicValue.listing_id == listing.id
        )
        assert [(v.characteristic_id, v.text_value) for v in values] == [
            (definitions["Piso"].id, "PH")
        ]

    @pytest.mark.asyncio
    async def test_declared_type_and_unit(
        self, reconciliation_engine, listing_factory, fetch_all
    ):
        await reconciliation_engine.process_batch(
            [
                listing_factory(
                    1,
                    caracteristicas=[
                        {"nombre": "Altura", "valor": "2.5", "tipo": "texto", "unidad": "m"}
                    ],
                )
            ],
            SyncOptions(download_images=False),
        )

        definition = (await fetch_all(Characteristic))[0]
        assert definition.value_type == CharacteristicTypeEnum.TEXT
        assert definition.unit == "m"
