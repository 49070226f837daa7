"""Bookkeeper client directory and the client's institution list."""
from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from app.core.errors import Forbidden
from app.models.monthly_package import MonthlyPackage, PackageStatus
from app.services.clients import list_clients, list_institutions


async def _set_created(db, pkg, when: datetime):
    await db.execute(
        update(MonthlyPackage).where(MonthlyPackage.id == pkg.id).values(created_at=when)
    )
    await db.commit()


@pytest.fixture
async def directory(db, make_user, make_package, make_statement):
    """Three clients: one active in March, one in January, one who never started."""
    sarah = await make_user("sarah@example.com", name="Sarah Johnson", company_name="Johnson Bakery LLC")
    mike = await make_user("mike@example.com", name="Mike Chen", company_name="Chen Consulting")
    nora = await make_user("nora@example.com", name="Nora Patel", company_name="Patel Dental")

    jan = await make_package(sarah, month=1, year=2026, status=PackageStatus.FINISHED)
    await make_statement(jan, "jan.pdf")
    mar = await make_package(sarah, month=3, year=2026)
    await make_statement(mar, "mar.pdf")
    mike_jan = await make_package(mike, month=1, year=2026, status=PackageStatus.CATEGORIZING)

    await _set_created(db, jan, datetime(2026, 2, 1, tzinfo=timezone.utc))
    await _set_created(db, mar, datetime(2026, 4, 1, tzinfo=timezone.utc))
    await _set_created(db, mike_jan, datetime(2026, 2, 15, tzinfo=timezone.utc))
    return {"sarah": sarah, "mike": mike, "nora": nora}


class TestListClients:
    async def test_sorted_by_activity_with_inactive_last(self, db, bookkeeper_caller, directory):
        clients = await list_clients(db, bookkeeper_caller)
        assert [c.email for c in clients] == [
            "sarah@example.com",
            "mike@example.com",
            "nora@example.com",
        ]

    async def test_bookkeepers_are_not_listed(self, db, bookkeeper_caller, bookkeeper_user, directory):
        emails = {c.email for c in await list_clients(db, bookkeeper_caller)}
        assert bookkeeper_user.email not in emails

    async def test_counts_and_latest_status(self, db, bookkeeper_caller, directory):
        by_email = {c.email: c for c in await list_clients(db, bookkeeper_caller)}
        sarah = by_email["sarah@example.com"]
        assert sarah.statement_count == 2
        # March is the latest period even though January is finished
        assert sarah.latest_package_status == PackageStatus.NEED_STATEMENTS
        assert by_email["mike@example.com"].latest_package_status == PackageStatus.CATEGORIZING
        assert by_email["nora@example.com"].latest_package_status is None
        assert by_email["nora@example.com"].latest_activity is None

    @pytest.mark.parametrize(
        "search, expected",
        [
            ("sarah", {"sarah@example.com"}),
            ("CHEN", {"mike@example.com"}),
            ("dental", {"nora@example.com"}),
            ("example.com", {"sarah@example.com", "mike@example.com", "nora@example.com"}),
            ("nobody", set()),
        ],
    )
    async def test_search(self, db, bookkeeper_caller, directory, search, expected):
        clients = await list_clients(db, bookkeeper_caller, search=search)
        assert {c.email for c in clients} == expected

    @pytest.mark.parametrize("search", ["%", "_", "s%h", "mike_"])
    async def test_search_wildcards_are_literal(self, db, bookkeeper_caller, directory, search):
        assert await list_clients(db, bookkeeper_caller, search=search) == []

    async def test_filter_no_uploads(self, db, bookkeeper_caller, directory):
        clients = await list_clients(db, bookkeeper_caller, status_filter="no_uploads")
        assert {c.email for c in clients} == {"mike@example.com", "nora@example.com"}

    async def test_filter_incomplete(self, db, bookkeeper_caller, directory):
        clients = await list_clients(db, bookkeeper_caller, status_filter="incomplete")
        assert [c.email for c in clients] == ["sarah@example.com"]

    async def test_filter_exact_status(self, db, bookkeeper_caller, directory):
        clients = await list_clients(db, bookkeeper_caller, status_filter="categorizing")
        assert [c.email for c in clients] == ["mike@example.com"]

    async def test_client_cannot_list(self, db, client_caller):
        with pytest.raises(Forbidden):
            await list_clients(db, client_caller)


class TestListInstitutions:
    async def test_distinct_and_sorted(
        self, db, client_user, client_caller, other_client, make_package, make_statement
    ):
        jan = await make_package(client_user, month=1)
        feb = await make_package(client_user, month=2)
        await make_statement(jan, "a.pdf", institution_name="Wells Fargo")
        await make_statement(jan, "b.pdf", institution_name="Chase")
        await make_statement(feb, "c.pdf", institution_name="Chase")
        mike = await make_package(other_client)
        await make_statement(mike, "d.pdf", institution_name="Amex")

        assert await list_institutions(db, client_caller) == ["Chase", "Wells Fargo"]

    async def test_no_statements(self, db, client_caller):
        assert await list_institutions(db, client_caller) == []
