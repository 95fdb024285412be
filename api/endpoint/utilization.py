# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sanic import Blueprint, response

from api.envelope import CountMeta, Ok, PageMeta, json_number
from api.errors import DatabaseError
from api.params import (Pagination, optional_int, optional_str, pagination,
                        require_int, require_str)
from api.query import QueryBuilder, contains_pattern
from db.connection import QueryDescriptor, QueryError

logger = logging.getLogger(__name__)

blueprint = Blueprint("utilization", url_prefix="/api")

UTILIZATION_TABLE = "prescribers_by_geography_drug"

DRUG_NAME_MATCH = "(brnd_name ILIKE {0} OR gnrc_name ILIKE {0})"

METRIC_COLUMNS = """
    year,
    COALESCE(brnd_name, gnrc_name) AS drug_name,
    tot_prscrbrs,
    tot_clms,
    tot_30day_fills,
    tot_drug_cst,
    tot_benes"""

GEO_COLUMNS = """,
    prscrbr_geo_lvl,
    prscrbr_geo_cd,
    prscrbr_geo_desc"""

METRICS_SELECT = f"SELECT{METRIC_COLUMNS}\nFROM {UTILIZATION_TABLE}"
GEO_METRICS_SELECT = f"SELECT{METRIC_COLUMNS}{GEO_COLUMNS}\nFROM {UTILIZATION_TABLE}"


@dataclass(frozen=True)
class TrendsParams:
    year: int
    page: Pagination = Pagination()


@dataclass(frozen=True)
class DrugSearchParams:
    drug: str
    start_year: Optional[int] = None
    end_year: Optional[int] = None


@dataclass(frozen=True)
class GeoDetailParams:
    year: int
    drug: Optional[str] = None


@dataclass(frozen=True)
class RegionDetailParams:
    level: str
    region: str
    year: Optional[int] = None
    page: Pagination = Pagination()


def _get_db(request):
    database = getattr(request.app.ctx, "db", None)
    if database is None:
        raise RuntimeError("Database not available on application context")
    return database


async def _fetch(request, query: QueryDescriptor, operation: str):
    try:
        return await _get_db(request).fetch(query)
    except QueryError as exc:
        logger.warning("Database error while %s: %s", operation, exc)
        raise DatabaseError(f"Database error while {operation}", details=str(exc)) from exc


def parse_trends_args(args) -> TrendsParams:
    return TrendsParams(year=require_int(args, "year"), page=pagination(args))


def parse_search_args(args) -> DrugSearchParams:
    return DrugSearchParams(
        drug=require_str(args, "drug", message="Missing required parameter: drug"),
        start_year=optional_int(args, "startYear"),
        end_year=optional_int(args, "endYear"),
    )


def parse_geo_detail_args(args) -> GeoDetailParams:
    return GeoDetailParams(year=require_int(args, "year"), drug=optional_str(args, "drug"))


def parse_region_detail_args(args) -> RegionDetailParams:
    return RegionDetailParams(
        level=require_str(args, "level"),
        region=require_str(args, "region"),
        year=optional_int(args, "year"),
        page=pagination(args),
    )


def build_years_query() -> QueryDescriptor:
    return (
        QueryBuilder(f"SELECT DISTINCT year\nFROM {UTILIZATION_TABLE}")
        .order_by("year ASC")
        .build()
    )


def build_trends_query(params: TrendsParams) -> QueryDescriptor:
    return (
        QueryBuilder(METRICS_SELECT)
        .where("year = {0}", params.year)
        .order_by("tot_clms DESC")
        .paginate(params.page.limit, params.page.offset)
        .build()
    )


def build_search_query(params: DrugSearchParams) -> QueryDescriptor:
    return (
        QueryBuilder(GEO_METRICS_SELECT)
        .where(DRUG_NAME_MATCH, contains_pattern(params.drug))
        .where_present("year >= {0}", params.start_year)
        .where_present("year <= {0}", params.end_year)
        .order_by("year DESC", "tot_clms DESC")
        .build()
    )


def build_national_totals_query() -> QueryDescriptor:
    return (
        QueryBuilder(
            "SELECT year,\n"
            "    SUM(tot_prscrbrs) AS total_prescribers,\n"
            "    SUM(tot_clms) AS total_claims,\n"
            "    SUM(tot_30day_fills) AS total_30day_fills,\n"
            "    SUM(tot_drug_cst) AS total_drug_cost,\n"
            "    SUM(tot_benes) AS total_beneficiaries\n"
            f"FROM {UTILIZATION_TABLE}"
        )
        .group_by("year")
        .order_by("year ASC")
        .build()
    )


def build_geo_detail_query(params: GeoDetailParams) -> QueryDescriptor:
    builder = QueryBuilder(GEO_METRICS_SELECT).where("year = {0}", params.year)
    if params.drug:
        builder.where(DRUG_NAME_MATCH, contains_pattern(params.drug))
    return (
        builder
        .order_by("prscrbr_geo_lvl ASC", "prscrbr_geo_cd ASC", "tot_clms DESC")
        .build()
    )


def build_region_detail_query(params: RegionDetailParams) -> QueryDescriptor:
    return (
        QueryBuilder(GEO_METRICS_SELECT)
        .where("prscrbr_geo_lvl = {0}", params.level)
        .where("prscrbr_geo_desc = {0}", params.region)
        .where_present("year = {0}", params.year)
        .order_by("tot_clms DESC")
        .paginate(params.page.limit, params.page.offset)
        .build()
    )


def _serialize_metrics_row(row, with_geo: bool = False) -> Dict[str, Any]:
    item = {
        "drugName": row["drug_name"],
        "year": row["year"],
        "totalPrescribers": json_number(row["tot_prscrbrs"]),
        "totalClaims": json_number(row["tot_clms"]),
        "total30DayFills": json_number(row["tot_30day_fills"]),
        "totalDrugCost": json_number(row["tot_drug_cst"]),
        "totalBeneficiaries": json_number(row["tot_benes"]),
    }
    if with_geo:
        item["prscrbr_geo_lvl"] = row["prscrbr_geo_lvl"]
        item["prscrbr_geo_cd"] = row["prscrbr_geo_cd"]
        item["prscrbr_geo_desc"] = row["prscrbr_geo_desc"]
    return item


def _serialize_totals_row(row) -> Dict[str, Any]:
    return {
        "year": row["year"],
        "totalPrescribers": json_number(row["total_prescribers"]),
        "totalClaims": json_number(row["total_claims"]),
        "total30DayFills": json_number(row["total_30day_fills"]),
        "totalDrugCost": json_number(row["total_drug_cost"]),
        "totalBeneficiaries": json_number(row["total_beneficiaries"]),
    }


@blueprint.get("/years")
async def list_years(request):
    rows = await _fetch(request, build_years_query(), "listing years")
    return response.json([row["year"] for row in rows])


@blueprint.get("/trends")
async def get_trends(request):
    params = parse_trends_args(request.args)
    rows = await _fetch(request, build_trends_query(params), "fetching trends")
    data = [_serialize_metrics_row(row) for row in rows]
    meta = PageMeta(limit=params.page.limit, offset=params.page.offset, count=len(data))
    return Ok(data, meta).to_response()


@blueprint.get("/search")
async def search_by_drug(request):
    params = parse_search_args(request.args)
    rows = await _fetch(request, build_search_query(params), "searching by drug")
    data = [_serialize_metrics_row(row, with_geo=True) for row in rows]
    return Ok(data, CountMeta(count=len(data))).to_response()


@blueprint.get("/national_totals")
async def get_national_totals(request):
    rows = await _fetch(request, build_national_totals_query(), "fetching national totals")
    data = [_serialize_totals_row(row) for row in rows]
    return Ok(data, CountMeta(count=len(data))).to_response()


@blueprint.get("/geo_detail")
async def get_geo_detail(request):
    params = parse_geo_detail_args(request.args)
    rows = await _fetch(request, build_geo_detail_query(params), "fetching geographic detail")
    data = [_serialize_metrics_row(row, with_geo=True) for row in rows]
    return Ok(data, CountMeta(count=len(data))).to_response()


@blueprint.get("/region_detail")
async def get_region_detail(request):
    params = parse_region_detail_args(request.args)
    rows = await _fetch(request, build_region_detail_query(params), "fetching region detail")
    data = [_serialize_metrics_row(row, with_geo=True) for row in rows]
    meta = PageMeta(limit=params.page.limit, offset=params.page.offset, count=len(data))
    return Ok(data, meta).to_response()
