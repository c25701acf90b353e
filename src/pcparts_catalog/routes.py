"""REST endpoints for the storefront and admin UIs.

Compatibility views and CSV exports, served alongside the MCP endpoint.
"""

import json
import logging
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from . import service
from .compat import MatchMode
from .db import get_db
from .export import orders_csv, products_csv

logger = logging.getLogger(__name__)


_STATUS_BY_CODE = {
    service.ERROR_NOT_FOUND: 404,
    service.ERROR_INVALID_INPUT: 400,
}


def _json(result: dict[str, Any], status_code: int = 200) -> JSONResponse:
    """Map service error dicts to a status by their code (400 when uncoded)."""
    if "error" in result:
        return JSONResponse(result, status_code=_STATUS_BY_CODE.get(result.get("code"), 400))
    return JSONResponse(result, status_code=status_code)


def _mode(request: Request, default: MatchMode) -> MatchMode:
    return service.parse_mode(request.query_params.get("mode"), default)


def _csv(content: str, filename: str) -> Response:
    return Response(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ===== Compatibility =====


async def auto_compatible(request: Request) -> JSONResponse:
    try:
        mode = _mode(request, MatchMode.RULE_BASED)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return _json(service.compatible_products(get_db(), request.path_params["product_id"], mode))


async def auto_compatible_all(request: Request) -> JSONResponse:
    try:
        mode = _mode(request, MatchMode.RULE_BASED)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    result = service.products_with_compatibility(get_db(), request.path_params["product_id"], mode)
    if "error" in result:
        return _json(result)
    return JSONResponse(result["products"])


async def check_pair(request: Request) -> JSONResponse:
    try:
        mode = _mode(request, MatchMode.RULE_BASED)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return _json(service.check_pair(
        get_db(), request.path_params["product_id"], request.path_params["other_id"], mode
    ))


async def product_compatible(request: Request) -> JSONResponse:
    try:
        mode = _mode(request, MatchMode.GENERIC_OVERLAP)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return _json(service.compatible_products(get_db(), request.path_params["product_id"], mode))


async def all_compatible(request: Request) -> JSONResponse:
    try:
        mode = _mode(request, MatchMode.GENERIC_OVERLAP)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return _json(service.all_compatibility(get_db(), mode))


async def builds(request: Request) -> JSONResponse:
    return _json(service.compatible_builds(get_db()))


async def product_builds(request: Request) -> JSONResponse:
    return _json(service.builds_for_product(get_db(), request.path_params["product_id"]))


async def sequential(request: Request) -> JSONResponse:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)
    selected = body.get("selectedProductIds", body.get("selectedProducts"))
    if selected is not None and not isinstance(selected, list):
        return JSONResponse({"error": "selectedProductIds must be a list"}, status_code=400)
    return _json(service.sequential_compatibility(get_db(), selected))


# ===== CSV exports =====


async def export_products(request: Request) -> Response:
    products = get_db().find_products()
    if not products:
        return JSONResponse({"error": "No products found"}, status_code=404)
    return _csv(products_csv(products), "products.csv")


async def export_orders(request: Request) -> Response:
    orders = get_db().all_orders()
    if not orders:
        return JSONResponse({"error": "No orders found"}, status_code=404)
    return _csv(orders_csv(orders), "orders.csv")


async def export_quotations(request: Request) -> Response:
    quotations = get_db().all_orders(order_type="Quotation", include_deleted=False)
    if not quotations:
        return JSONResponse({"error": "No quotations found"}, status_code=404)
    return _csv(orders_csv(quotations), "quotations.csv")


# Static paths before parameterised ones that would shadow them
ROUTES = [
    Route("/api/compatibility/auto/{product_id}", auto_compatible),
    Route("/api/compatibility/auto/{product_id}/all", auto_compatible_all),
    Route("/api/compatibility/check/{product_id}/{other_id}", check_pair),
    Route("/api/products/compatibility/all", all_compatible),
    Route("/api/products/compatibility/builds", builds),
    Route("/api/products/compatibility/sequential", sequential, methods=["POST"]),
    Route("/api/products/export/csv", export_products),
    Route("/api/products/{product_id}/compatible", product_compatible),
    Route("/api/products/{product_id}/builds", product_builds),
    Route("/api/orders/export/csv", export_orders),
    Route("/api/quotations/export/csv", export_quotations),
]
