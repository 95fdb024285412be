# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sanic import Blueprint

from api.envelope import CountMeta, Ok, PageMeta, json_number
from api.errors import DatabaseError, ParameterError
from api.params import (Pagination, choice, optional_int, optional_str, parse_int,
                        pagination, require_any, require_str)
from api.query import QueryBuilder, resolve_sort
from db.connection import QueryDescriptor, QueryError

logger = logging.getLogger(__name__)

blueprint = Blueprint("formulary", url_prefix="/api/formulary")

ID_TYPES = ("rxcui", "ndc")
YES_NO = ("Y", "N")
SEARCH_FILTERS = ("rxcui", "ndc", "tier", "pa", "st", "ql")
COVERED_STATUS = "Covered"

SORT_COLUMNS = {
    "formularyId": "bf.formulary_id",
    "tierLevel": "bf.tier_level_value",
    "paRequired": "bf.prior_authorization_yn",
    "stepTherapyRequired": "bf.step_therapy_yn",
    "quantityLimit": "bf.quantity_limit_yn",
}
DEFAULT_SORT_COLUMN = "bf.tier_level_value"

LOOKUP_SELECT = """SELECT
    bf.formulary_id,
    bf.rxcui,
    bf.ndc,
    pi.plan_id AS plan_id,
    pi.contract_id AS contract_id,
    pi.plan_name AS plan_name,
    bf.tier_level_value,
    bf.prior_authorization_yn,
    bf.step_therapy_yn,
    bf.quantity_limit_yn
FROM basic_drugs_formulary bf
INNER JOIN plan_info pi ON pi.formulary_id = bf.formulary_id"""

SEARCH_SELECT = """SELECT
    bf.formulary_id,
    bf.rxcui,
    bf.ndc,
    bf.tier_level_value,
    bf.prior_authorization_yn,
    bf.step_therapy_yn,
    bf.quantity_limit_yn
FROM basic_drugs_formulary bf"""


@dataclass(frozen=True)
class FormularyLookupParams:
    id_type: str
    drug_id: Any
    plan_id: str
    contract_id: Optional[str] = None


@dataclass(frozen=True)
class FormularySearchParams:
    rxcui: Optional[int] = None
    ndc: Optional[str] = None
    tier: Optional[int] = None
    pa: Optional[str] = None
    st: Optional[str] = None
    ql: Optional[str] = None
    sort_by: Optional[str] = None
    sort_dir: Optional[str] = None
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


def parse_lookup_args(args) -> FormularyLookupParams:
    drug_id = require_str(args, "drug_id")
    id_type = choice(
        args,
        "id_type",
        ID_TYPES,
        normalize=str.lower,
        required=True,
        message="Parameter 'id_type' must be either 'rxcui' or 'ndc'",
    )
    plan_id = require_str(args, "plan_id")
    if id_type == "rxcui":
        # rxcui is an integer column, ndc is varchar(20)
        drug_id = parse_int(drug_id)
        if drug_id is None:
            raise ParameterError("Parameter 'drug_id' must be an integer when id_type='rxcui'")
    return FormularyLookupParams(
        id_type=id_type,
        drug_id=drug_id,
        plan_id=plan_id,
        contract_id=optional_str(args, "contract_id"),
    )


def parse_search_args(args) -> FormularySearchParams:
    params = FormularySearchParams(
        rxcui=optional_int(args, "rxcui"),
        ndc=args.get("ndc") or None,
        tier=optional_int(args, "tier"),
        pa=choice(args, "pa", YES_NO),
        st=choice(args, "st", YES_NO),
        ql=choice(args, "ql", YES_NO),
        sort_by=args.get("sort_by"),
        sort_dir=args.get("sort_dir"),
        page=pagination(args),
    )
    require_any({name: getattr(params, name) for name in SEARCH_FILTERS}, SEARCH_FILTERS)
    return params


def build_lookup_query(params: FormularyLookupParams) -> QueryDescriptor:
    drug_column = "bf.rxcui" if params.id_type == "rxcui" else "bf.ndc"
    return (
        QueryBuilder(LOOKUP_SELECT)
        .where(f"{drug_column} = {{0}}", params.drug_id)
        .where("(pi.plan_id = {0} OR pi.formulary_id = {0})", params.plan_id)
        .where_present("pi.contract_id = {0}", params.contract_id)
        .order_by("bf.tier_level_value ASC", "bf.ndc ASC")
        .build()
    )


def build_search_query(params: FormularySearchParams) -> QueryDescriptor:
    sort_column, sort_dir = resolve_sort(
        params.sort_by, params.sort_dir, SORT_COLUMNS, DEFAULT_SORT_COLUMN
    )
    return (
        QueryBuilder(SEARCH_SELECT)
        .where_present("bf.rxcui = {0}", params.rxcui)
        .where_present("bf.ndc = {0}", params.ndc)
        .where_present("bf.tier_level_value = {0}", params.tier)
        .where_present("bf.prior_authorization_yn = {0}", params.pa)
        .where_present("bf.step_therapy_yn = {0}", params.st)
        .where_present("bf.quantity_limit_yn = {0}", params.ql)
        .order_by(f"{sort_column} {sort_dir}", "bf.ndc ASC")
        .paginate(params.page.limit, params.page.offset)
        .build()
    )


def _serialize_formulary_row(row) -> Dict[str, Any]:
    return {
        "formularyId": row["formulary_id"],
        "rxcui": json_number(row["rxcui"]),
        "ndc": row["ndc"],
        "tierLevel": json_number(row["tier_level_value"]),
        "paRequired": row["prior_authorization_yn"],
        "stepTherapyRequired": row["step_therapy_yn"],
        "quantityLimit": row["quantity_limit_yn"],
    }


def _serialize_lookup_row(row) -> Dict[str, Any]:
    item = _serialize_formulary_row(row)
    item.update(
        {
            "planId": row["plan_id"],
            "contractId": row["contract_id"],
            "planName": row["plan_name"],
            "coveredStatus": COVERED_STATUS,
        }
    )
    return item


@blueprint.get("/lookup")
async def lookup_formulary(request):
    params = parse_lookup_args(request.args)
    rows = await _fetch(request, build_lookup_query(params), "performing formulary lookup")
    if not rows:
        return Ok([], CountMeta(count=0), status=404).to_response()
    data = [_serialize_lookup_row(row) for row in rows]
    return Ok(data, CountMeta(count=len(data))).to_response()


@blueprint.get("/search")
async def search_formulary(request):
    params = parse_search_args(request.args)
    rows = await _fetch(request, build_search_query(params), "searching formulary")
    data = [_serialize_formulary_row(row) for row in rows]
    meta = PageMeta(limit=params.page.limit, offset=params.page.offset, count=len(data))
    return Ok(data, meta).to_response()
