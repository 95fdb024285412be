# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

import json
from decimal import Decimal

import pytest

from api.endpoint import utilization
from api.errors import DatabaseError, ParameterError
from tests.fakes import make_request, metrics_row, query_error


@pytest.mark.asyncio
async def test_list_years_returns_bare_array():
    request = make_request(rows=[{"year": 2021}, {"year": 2022}, {"year": 2023}])

    response = await utilization.list_years(request)

    assert response.status == 200
    assert json.loads(response.body) == [2021, 2022, 2023]
    query = request.app.ctx.db.queries[0]
    assert "SELECT DISTINCT year" in query.sql
    assert query.sql.endswith("ORDER BY year ASC")
    assert query.params == ()


@pytest.mark.asyncio
async def test_trends_returns_page_with_metadata():
    rows = [
        metrics_row(drug_name="Atorvastatin", tot_clms=900),
        metrics_row(drug_name="Lisinopril", tot_clms=800),
    ]
    request = make_request(rows=rows, args={"year": "2023", "limit": "2", "offset": "0"})

    response = await utilization.get_trends(request)
    payload = json.loads(response.body)

    assert response.status == 200
    assert payload["success"] is True
    assert payload["count"] == 2
    assert payload["limit"] == 2
    assert payload["offset"] == 0
    assert [item["drugName"] for item in payload["data"]] == ["Atorvastatin", "Lisinopril"]
    assert payload["data"][0] == {
        "drugName": "Atorvastatin",
        "year": 2023,
        "totalPrescribers": 1200,
        "totalClaims": 900,
        "total30DayFills": 61000,
        "totalDrugCost": 812345,
        "totalBeneficiaries": 21000,
    }

    query = request.app.ctx.db.queries[0]
    assert query.params == (2023, 2, 0)
    assert "WHERE year = $1" in query.sql
    assert "ORDER BY tot_clms DESC" in query.sql
    assert query.sql.endswith("LIMIT $2 OFFSET $3")


@pytest.mark.asyncio
async def test_trends_default_pagination_is_echoed():
    request = make_request(rows=[], args={"year": "2022"})

    payload = json.loads((await utilization.get_trends(request)).body)

    assert payload["limit"] == 50
    assert payload["offset"] == 0
    assert payload["count"] == 0
    assert request.app.ctx.db.queries[0].params == (2022, 50, 0)


@pytest.mark.asyncio
async def test_trends_requires_year():
    request = make_request(args={})
    with pytest.raises(ParameterError, match="Missing required parameter: year"):
        await utilization.get_trends(request)
    assert request.app.ctx.db.queries == []


@pytest.mark.asyncio
async def test_trends_rejects_float_year():
    request = make_request(args={"year": "2023.5"})
    with pytest.raises(ParameterError, match="Parameter 'year' must be an integer"):
        await utilization.get_trends(request)


@pytest.mark.asyncio
async def test_trends_database_failure():
    request = make_request(args={"year": "2023"}, error=query_error("timeout expired"))
    with pytest.raises(DatabaseError) as exc_info:
        await utilization.get_trends(request)
    assert exc_info.value.status_code == 500
    assert str(exc_info.value) == "Database error while fetching trends"
    assert exc_info.value.details == "timeout expired"


@pytest.mark.asyncio
async def test_search_binds_one_pattern_for_brand_and_generic():
    request = make_request(rows=[metrics_row()], args={"drug": "metformin"})

    payload = json.loads((await utilization.search_by_drug(request)).body)

    assert payload["count"] == 1
    assert payload["data"][0]["prscrbr_geo_desc"] == "California"
    assert "limit" not in payload
    query = request.app.ctx.db.queries[0]
    assert "(brnd_name ILIKE $1 OR gnrc_name ILIKE $1)" in query.sql
    assert query.params == ("%metformin%",)
    assert "ORDER BY year DESC, tot_clms DESC" in query.sql


@pytest.mark.asyncio
async def test_search_year_range_placeholders():
    request = make_request(args={"drug": "insulin", "endYear": "2022"})
    await utilization.search_by_drug(request)
    query = request.app.ctx.db.queries[0]
    assert "year <= $2" in query.sql
    assert "year >=" not in query.sql
    assert query.params == ("%insulin%", 2022)

    request = make_request(args={"drug": "insulin", "startYear": "2019", "endYear": "2022"})
    await utilization.search_by_drug(request)
    query = request.app.ctx.db.queries[0]
    assert "year >= $2 AND year <= $3" in query.sql
    assert query.params == ("%insulin%", 2019, 2022)


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [{}, {"drug": ""}, {"drug": "  "}])
async def test_search_requires_drug(args):
    request = make_request(args=args)
    with pytest.raises(ParameterError) as exc_info:
        await utilization.search_by_drug(request)
    assert str(exc_info.value) == "Missing required parameter: drug"
    assert request.app.ctx.db.queries == []


@pytest.mark.asyncio
async def test_search_rejects_bad_start_year():
    with pytest.raises(ParameterError, match="Parameter 'startYear' must be an integer"):
        await utilization.search_by_drug(make_request(args={"drug": "x", "startYear": "soon"}))


@pytest.mark.asyncio
async def test_national_totals_maps_decimal_sums():
    rows = [
        {
            "year": 2022,
            "total_prescribers": Decimal("10"),
            "total_claims": Decimal("2500"),
            "total_30day_fills": Decimal("2600.5"),
            "total_drug_cost": Decimal("123456.78"),
            "total_beneficiaries": Decimal("900"),
        }
    ]
    request = make_request(rows=rows)

    payload = json.loads((await utilization.get_national_totals(request)).body)

    assert payload == {
        "success": True,
        "data": [
            {
                "year": 2022,
                "totalPrescribers": 10,
                "totalClaims": 2500,
                "total30DayFills": 2600.5,
                "totalDrugCost": 123456.78,
                "totalBeneficiaries": 900,
            }
        ],
        "count": 1,
    }
    query = request.app.ctx.db.queries[0]
    assert "GROUP BY year" in query.sql
    assert "WHERE" not in query.sql


@pytest.mark.asyncio
async def test_geo_detail_optional_drug():
    request = make_request(rows=[metrics_row()], args={"year": "2023"})
    await utilization.get_geo_detail(request)
    query = request.app.ctx.db.queries[0]
    assert query.params == (2023,)
    assert "ILIKE" not in query.sql

    request = make_request(rows=[metrics_row()], args={"year": "2023", "drug": "Eliquis"})
    payload = json.loads((await utilization.get_geo_detail(request)).body)
    query = request.app.ctx.db.queries[0]
    assert query.params == (2023, "%Eliquis%")
    assert "(brnd_name ILIKE $2 OR gnrc_name ILIKE $2)" in query.sql
    assert "ORDER BY prscrbr_geo_lvl ASC, prscrbr_geo_cd ASC, tot_clms DESC" in query.sql
    assert payload["data"][0]["prscrbr_geo_lvl"] == "State"


@pytest.mark.asyncio
async def test_geo_detail_blank_drug_adds_no_filter():
    request = make_request(args={"year": "2023", "drug": "   "})
    await utilization.get_geo_detail(request)
    query = request.app.ctx.db.queries[0]
    assert query.params == (2023,)
    assert "ILIKE" not in query.sql


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "args, message",
    [
        ({}, "Missing required parameter: year"),
        ({"drug": "Eliquis"}, "Missing required parameter: year"),
        ({"year": "twenty"}, "Parameter 'year' must be an integer"),
        ({"year": "2023.0"}, "Parameter 'year' must be an integer"),
    ],
)
async def test_geo_detail_validation(args, message):
    request = make_request(args=args)
    with pytest.raises(ParameterError) as exc_info:
        await utilization.get_geo_detail(request)
    assert str(exc_info.value) == message
    assert request.app.ctx.db.queries == []


@pytest.mark.asyncio
async def test_region_detail_builds_filters_and_page():
    request = make_request(
        rows=[metrics_row()],
        args={"level": "State", "region": "Texas", "year": "2021", "limit": "10", "offset": "5"},
    )

    payload = json.loads((await utilization.get_region_detail(request)).body)

    assert (payload["limit"], payload["offset"], payload["count"]) == (10, 5, 1)
    query = request.app.ctx.db.queries[0]
    assert "prscrbr_geo_lvl = $1 AND prscrbr_geo_desc = $2 AND year = $3" in query.sql
    assert query.sql.endswith("LIMIT $4 OFFSET $5")
    assert query.params == ("State", "Texas", 2021, 10, 5)


@pytest.mark.asyncio
async def test_region_detail_without_year():
    request = make_request(args={"level": "National", "region": "National"})
    await utilization.get_region_detail(request)
    query = request.app.ctx.db.queries[0]
    assert query.sql.endswith("LIMIT $3 OFFSET $4")
    assert query.params == ("National", "National", 50, 0)


@pytest.mark.asyncio
async def test_region_detail_requires_region():
    with pytest.raises(ParameterError, match="Missing or invalid required parameter: region"):
        await utilization.get_region_detail(make_request(args={"level": "State"}))


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [{"region": "Texas"}, {"level": "", "region": "Texas"}, {"level": " ", "region": "Texas"}])
async def test_region_detail_requires_level(args):
    request = make_request(args=args)
    with pytest.raises(ParameterError) as exc_info:
        await utilization.get_region_detail(request)
    assert str(exc_info.value) == "Missing or invalid required parameter: level"
    assert request.app.ctx.db.queries == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler, args, label",
    [
        (utilization.list_years, {}, "listing years"),
        (utilization.get_trends, {"year": "2023"}, "fetching trends"),
        (utilization.search_by_drug, {"drug": "metformin"}, "searching by drug"),
        (utilization.get_national_totals, {}, "fetching national totals"),
        (utilization.get_geo_detail, {"year": "2023"}, "fetching geographic detail"),
        (utilization.get_region_detail, {"level": "State", "region": "Ohio"}, "fetching region detail"),
    ],
)
async def test_database_failures_name_the_operation(handler, args, label):
    request = make_request(args=args, error=query_error("connection reset by peer"))
    with pytest.raises(DatabaseError) as exc_info:
        await handler(request)
    assert exc_info.value.status_code == 500
    assert str(exc_info.value) == f"Database error while {label}"
    assert exc_info.value.details == "connection reset by peer"


def test_query_builders_are_deterministic():
    params = utilization.parse_region_detail_args({"level": "State", "region": "Ohio", "year": "2020"})
    assert utilization.build_region_detail_query(params) == utilization.build_region_detail_query(params)


def test_missing_database_is_a_misconfiguration():
    import types

    request = types.SimpleNamespace(app=types.SimpleNamespace(ctx=types.SimpleNamespace()))
    with pytest.raises(RuntimeError):
        utilization._get_db(request)
