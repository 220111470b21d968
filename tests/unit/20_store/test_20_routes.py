# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for the routes table and RouteResolver."""

import pytest

from bounce_hook.models import Route
from bounce_hook.resolver import RouteResolver, split_address


def route(domain="example.com", user=None, url="https://hooks.example.com/bounce", secret="s3cret", active=True):
    return Route(domain=domain, user=user, url=url, secret_token=secret, is_active=active)


class TestSplitAddress:
    def test_lowercases_both_parts(self):
        assert split_address("John.Doe@Example.COM") == ("john.doe", "example.com")

    def test_splits_at_last_at_sign(self):
        assert split_address('"odd@name"@example.com') == ('"odd@name"', "example.com")

    def test_recipient_delimiter(self):
        assert split_address("john+news@example.com", "+") == ("john", "example.com")

    def test_delimiter_not_present(self):
        assert split_address("john@example.com", "+") == ("john", "example.com")

    @pytest.mark.parametrize("value", ["", "john", "@example.com", "john@"])
    def test_rejects_non_addresses(self, value):
        with pytest.raises(ValueError):
            split_address(value)


@pytest.mark.asyncio
async def test_add_and_list_routes(db):
    route_id = await db.add_route(route(domain="Example.com", user="John"))
    [stored] = await db.list_routes()

    assert stored.id == route_id
    assert stored.domain == "example.com"
    assert stored.user == "john"
    assert stored.is_active is True


@pytest.mark.asyncio
async def test_catch_all_and_user_route_both_match(db):
    catch_all = await db.add_route(route(url="https://a.example/hook"))
    exact = await db.add_route(route(user="john", url="https://b.example/hook"))
    await db.add_route(route(user="mary", url="https://c.example/hook"))
    await db.add_route(route(domain="other.example", url="https://d.example/hook"))

    routes = await RouteResolver(db).resolve("john@example.com")
    assert sorted(r.id for r in routes) == sorted([catch_all, exact])


@pytest.mark.asyncio
async def test_resolution_is_case_insensitive(db):
    await db.add_route(route())
    await db.add_route(route(user="john"))
    resolver = RouteResolver(db)

    upper = await resolver.resolve("John@Example.com")
    lower = await resolver.resolve("john@example.com")
    assert {r.id for r in upper} == {r.id for r in lower}
    assert len(lower) == 2


@pytest.mark.asyncio
async def test_deactivating_one_route_keeps_the_other(db):
    catch_all = await db.add_route(route())
    exact = await db.add_route(route(user="john"))
    resolver = RouteResolver(db)

    assert await db.set_route_active(exact, False) is True
    assert [r.id for r in await resolver.resolve("john@example.com")] == [catch_all]

    await db.set_route_active(exact, True)
    await db.set_route_active(catch_all, False)
    assert [r.id for r in await resolver.resolve("john@example.com")] == [exact]


@pytest.mark.asyncio
async def test_no_match_is_empty(db):
    await db.add_route(route(user="mary"))
    await db.add_route(route(active=False))
    assert await RouteResolver(db).resolve("john@example.com") == []


@pytest.mark.asyncio
async def test_set_active_unknown_route(db):
    assert await db.set_route_active(999, False) is False


@pytest.mark.asyncio
async def test_resolver_strips_subaddress(db):
    exact = await db.add_route(route(user="john"))
    routes = await RouteResolver(db, recipient_delimiter="+").resolve("John+orders@example.com")
    assert [r.id for r in routes] == [exact]
    assert await RouteResolver(db).resolve("john+orders@example.com") == []


@pytest.mark.asyncio
async def test_mixed_case_user_written_to_the_store(db):
    await db.adapter.execute(
        f"INSERT INTO email_routes (domain, {db.adapter.sql_name('user')}, url, secret_token, is_active) "
        "VALUES (:domain, :user, :url, :secret_token, 1)",
        {"domain": "example.com", "user": "John", "url": "https://a.example/hook", "secret_token": "k"},
    )

    [found] = await RouteResolver(db).resolve("John@Example.com")
    assert found.url == "https://a.example/hook"
    assert found.user == "john"
