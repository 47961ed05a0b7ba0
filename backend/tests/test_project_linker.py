"""Tests for project/customer resolution and inventory linking."""

import asyncio

import pytest

from assettrack.db_inventory import insert_asset
from assettrack.errors import LinkingError
from assettrack.services.project_linker import (
    get_asset_link,
    link_asset_to_project,
    next_customer_ref,
    resolve_customer,
    resolve_project,
)


async def _add_customer(db, ref: str, name: str, branch: str = "") -> int:
    cursor = await db.execute(
        "INSERT INTO customers (customer_ref_number, customer_name, branch) VALUES (?, ?, ?)",
        (ref, name, branch),
    )
    await db.commit()
    return cursor.lastrowid


class TestResolveProject:
    @pytest.mark.asyncio
    async def test_exact_reference(self, db, project):
        assert await resolve_project(db, "P001") > 0

    @pytest.mark.asyncio
    async def test_unknown_reference_fails(self, db, project):
        with pytest.raises(LinkingError, match="P999"):
            await resolve_project(db, "P999")

    @pytest.mark.asyncio
    async def test_blank_reference_fails(self, db):
        with pytest.raises(LinkingError):
            await resolve_project(db, "  ")


class TestCustomerReference:
    @pytest.mark.asyncio
    async def test_first_reference(self, db):
        assert await next_customer_ref(db) == "M0001"

    @pytest.mark.asyncio
    async def test_continues_from_highest(self, db):
        await _add_customer(db, "M0002", "Acme")
        await _add_customer(db, "M0007", "Globex")
        await _add_customer(db, "MANUAL", "Initech")
        await _add_customer(db, "X0100", "Umbrella")
        assert await next_customer_ref(db) == "M0008"


class TestResolveCustomer:
    @pytest.mark.asyncio
    async def test_exact_match(self, db):
        customer_id = await _add_customer(db, "M0001", "Acme", "HQ")
        result = await resolve_customer(db, "acme", "hq")
        assert result.customer_id == customer_id
        assert not result.created
        assert not result.branch_fallback

    @pytest.mark.asyncio
    async def test_same_name_other_branch_falls_back(self, db):
        customer_id = await _add_customer(db, "M0001", "Acme", "HQ")
        result = await resolve_customer(db, "Acme", "Branch 2")
        assert result.customer_id == customer_id
        assert result.branch_fallback
        assert result.matched_branch == "HQ"

    @pytest.mark.asyncio
    async def test_creates_with_generated_reference(self, db):
        await _add_customer(db, "M0004", "Globex", "East")
        result = await resolve_customer(db, "Acme", "HQ")
        assert result.created
        cursor = await db.execute(
            "SELECT customer_ref_number FROM customers WHERE customer_id = ?", (result.customer_id,)
        )
        assert (await cursor.fetchone())[0] == "M0005"

    @pytest.mark.asyncio
    async def test_missing_name_fails(self, db):
        with pytest.raises(LinkingError):
            await resolve_customer(db, "", "HQ")

    @pytest.mark.asyncio
    async def test_concurrent_creation_yields_one_customer(self, db):
        results = await asyncio.gather(*(resolve_customer(db, "Acme", "HQ") for _ in range(5)))
        assert len({r.customer_id for r in results}) == 1
        cursor = await db.execute("SELECT COUNT(*) FROM customers")
        assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_two_new_customers_get_distinct_references(self, db):
        a, b = await asyncio.gather(resolve_customer(db, "Acme", "HQ"), resolve_customer(db, "Globex", "HQ"))
        assert a.customer_id != b.customer_id
        cursor = await db.execute("SELECT customer_ref_number FROM customers ORDER BY customer_ref_number")
        assert [row[0] for row in await cursor.fetchall()] == ["M0001", "M0002"]


class TestLinkAssetToProject:
    @pytest.mark.asyncio
    async def test_fills_free_slot(self, db, project):
        project_id = await resolve_project(db, project)
        customer_id = await _add_customer(db, "M0001", "Acme", "HQ")
        cursor = await db.execute(
            "INSERT INTO inventory (project_id, customer_id, asset_id) VALUES (?, ?, NULL)",
            (project_id, customer_id),
        )
        await db.commit()
        slot_id = cursor.lastrowid

        asset_id = await insert_asset(db, "SN1", "T1", "Laptop")
        assert await link_asset_to_project(db, asset_id, project_id, customer_id) == slot_id
        link = await get_asset_link(db, asset_id)
        assert link["project_ref_number"] == "P001"
        assert link["customer_ref_number"] == "M0001"

    @pytest.mark.asyncio
    async def test_creates_link_when_no_free_slot(self, db, project):
        project_id = await resolve_project(db, project)
        customer_id = await _add_customer(db, "M0001", "Acme", "HQ")
        first = await insert_asset(db, "SN1", "T1", "Laptop")
        second = await insert_asset(db, "SN2", "T2", "Laptop")
        a = await link_asset_to_project(db, first, project_id, customer_id)
        b = await link_asset_to_project(db, second, project_id, customer_id)
        assert a != b

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_share_a_slot(self, db, project):
        project_id = await resolve_project(db, project)
        customer_id = await _add_customer(db, "M0001", "Acme", "HQ")
        await db.execute(
            "INSERT INTO inventory (project_id, customer_id, asset_id) VALUES (?, ?, NULL)",
            (project_id, customer_id),
        )
        await db.commit()
        assets = [await insert_asset(db, f"SN{i}", f"T{i}", "Laptop") for i in range(3)]
        links = await asyncio.gather(*(link_asset_to_project(db, a, project_id, customer_id) for a in assets))
        assert len(set(links)) == 3

    @pytest.mark.asyncio
    async def test_second_link_for_same_asset_fails(self, db, project):
        project_id = await resolve_project(db, project)
        customer_id = await _add_customer(db, "M0001", "Acme", "HQ")
        asset_id = await insert_asset(db, "SN1", "T1", "Laptop")
        await link_asset_to_project(db, asset_id, project_id, customer_id)
        with pytest.raises(LinkingError):
            await link_asset_to_project(db, asset_id, project_id, customer_id)
