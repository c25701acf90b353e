"""PC Parts Catalog MCP Server - catalog, orders and component compatibility for a computer-parts store."""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from . import __version__, service
from .compat import MatchMode
from .config import DEFAULT_PAGE_SIZE, HTTP_PORT, MAX_PAGE_SIZE, MAX_QUERY_LENGTH, RATE_LIMIT_REQUESTS
from .db import close_db, get_db
from .routes import ROUTES
from .templates import all_templates, get_template

logger = logging.getLogger(__name__)

Mode = Literal["rule_based", "generic_overlap"]


@asynccontextmanager
async def lifespan(app):
    """Open (building if needed) the database on startup, close it on shutdown."""
    db = get_db()
    db._ensure_db()
    stats = db.get_stats()
    logger.info(
        f"Catalog ready: {stats['total_products']} products in {stats['total_categories']} categories"
    )
    db.purge_expired_carts()

    yield

    close_db()


# Create MCP server
mcp = FastMCP(
    name="pcparts-catalog",
    instructions=(
        "Computer-parts store backend. Browse the catalog with search_products and list_categories. "
        "Compatibility is motherboard-centred: use find_compatible_products with mode='rule_based' for "
        "socket/RAM/PCIe/wattage/storage rules, or mode='generic_overlap' for any shared attribute value. "
        "list_builds and narrow_selection assemble CPU/RAM/GPU builds around a motherboard. "
        "Carts are per session_id; orders and quotations get O-001 / Q-001 style ids."
    ),
    lifespan=lifespan,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware - requests per minute per IP.

    Includes protections against memory exhaustion from IP spoofing:
    - Maximum tracked IPs limit (10,000)
    - Periodic cleanup of stale IPs
    """

    MAX_TRACKED_IPS = 10_000

    def __init__(self, app, requests_per_minute: int = RATE_LIMIT_REQUESTS):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.request_counts: dict[str, list[float]] = {}
        self._last_cleanup = time.time()

    def _get_client_ip(self, request) -> str:
        """Extract client IP, preferring rightmost X-Forwarded-For entry.

        Rightmost is harder to spoof as it's set by the last trusted proxy.
        """
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]
            return ips[-1] if ips else "unknown"
        return request.client.host if request.client else "unknown"

    def _cleanup_stale_ips(self, now: float) -> None:
        window_start = now - 60
        stale_ips = [
            ip for ip, timestamps in self.request_counts.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in stale_ips:
            del self.request_counts[ip]

    def _check_rate_limit(self, client_ip: str) -> bool:
        """True if this request should be rejected."""
        now = time.time()
        window_start = now - 60

        if now - self._last_cleanup > 60:
            self._cleanup_stale_ips(now)
            self._last_cleanup = now

        if len(self.request_counts) >= self.MAX_TRACKED_IPS:
            self._cleanup_stale_ips(now)
            if len(self.request_counts) >= self.MAX_TRACKED_IPS:
                return True

        if client_ip not in self.request_counts:
            self.request_counts[client_ip] = [now]
            return False

        self.request_counts[client_ip] = [
            t for t in self.request_counts[client_ip] if t > window_start
        ]
        if len(self.request_counts[client_ip]) >= self.requests_per_minute:
            return True

        self.request_counts[client_ip].append(now)
        return False

    async def dispatch(self, request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        if self._check_rate_limit(client_ip):
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retry_after": 60},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


def _parse_list_param(value: list[str] | str | None) -> list[str] | None:
    """Parse a list parameter that may come as a JSON string from some MCP clients.

    Some clients serialize list parameters as '["a", "b"]' instead of arrays.
    """
    if value is None:
        return None
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return parsed
        except json.JSONDecodeError:
            logger.debug(f"Failed to parse list parameter as JSON: {value[:100]!r}")
    return None


def _parse_dict_param(value: dict[str, Any] | str | None) -> dict[str, Any] | None:
    """Same as _parse_list_param, for object parameters."""
    if value is None or isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            logger.debug(f"Failed to parse object parameter as JSON: {value[:100]!r}")
    return None


def _annotations(title: str, read_only: bool = True, destructive: bool = False) -> ToolAnnotations:
    return ToolAnnotations(
        title=title,
        readOnlyHint=read_only,
        destructiveHint=destructive,
        idempotentHint=read_only,
        openWorldHint=False,
    )


# =============================================================================
# COMPATIBILITY TOOLS
# =============================================================================


@mcp.tool(annotations=_annotations("Find Compatible Products"))
async def find_compatible_products(product_id: str, mode: Mode = "rule_based") -> dict:
    """List products compatible with one product.

    Args:
        product_id: Product id
        mode: "rule_based" (motherboard hub rules: socket, RAM type/capacity/speed,
            PCIe, PSU wattage, storage type) or "generic_overlap" (any attribute key
            both products share with the same value, ignoring case)

    Returns:
        product, compatibleProducts (each with matchedAttributes), totalCompatible.
        A product without attributes returns an empty list with reason "no_attributes".
    """
    try:
        match_mode = service.parse_mode(mode, MatchMode.RULE_BASED)
    except ValueError as e:
        return {"error": str(e)}
    return service.compatible_products(get_db(), product_id, match_mode)


@mcp.tool(annotations=_annotations("Products With Compatibility Flag"))
async def list_products_with_compatibility(product_id: str, mode: Mode = "rule_based") -> dict:
    """Every other product in the catalog, each flagged isCompatible against product_id.

    Args:
        product_id: Product id
        mode: "rule_based" or "generic_overlap"
    """
    try:
        match_mode = service.parse_mode(mode, MatchMode.RULE_BASED)
    except ValueError as e:
        return {"error": str(e)}
    return service.products_with_compatibility(get_db(), product_id, match_mode)


@mcp.tool(annotations=_annotations("Check Two Products"))
async def check_compatibility(product_id: str, other_product_id: str, mode: Mode = "rule_based") -> dict:
    """Check whether two products are compatible and on which attributes.

    Returns:
        compatible, matchedAttributes and, when not compatible, a reason:
        no_attributes, unknown_category_pair, unparseable_numeric or no_match
    """
    try:
        match_mode = service.parse_mode(mode, MatchMode.RULE_BASED)
    except ValueError as e:
        return {"error": str(e)}
    return service.check_pair(get_db(), product_id, other_product_id, match_mode)


@mcp.tool(annotations=_annotations("Catalog Compatibility Overview"))
async def compatibility_overview(mode: Mode = "generic_overlap") -> dict:
    """Many-to-many compatibility across the whole catalog.

    Products without attributes are skipped; only products with at least one
    compatible partner are listed.
    """
    try:
        match_mode = service.parse_mode(mode, MatchMode.GENERIC_OVERLAP)
    except ValueError as e:
        return {"error": str(e)}
    return service.all_compatibility(get_db(), match_mode)


@mcp.tool(annotations=_annotations("List PC Builds"))
async def list_builds(product_id: str | None = None) -> dict:
    """Motherboard-centred builds with compatible CPUs, RAM and GPUs.

    Args:
        product_id: Optional anchor. A motherboard gives its build (if complete);
            a CPU, RAM or GPU gives one build per compatible motherboard listing
            the other two slots. Omit for every complete build in the catalog.
    """
    db = get_db()
    if product_id:
        return service.builds_for_product(db, product_id)
    return service.compatible_builds(db)


@mcp.tool(annotations=_annotations("Narrow Selection"))
async def narrow_selection(selected_product_ids: list[str] | str) -> dict:
    """What still fits, given the products picked so far.

    CPU and motherboard picks drive the narrowing:
    - CPU only: motherboards with the same socket
    - Motherboard only: CPUs, RAM, GPUs, PSUs and storage that fit it
    - Both: RAM and GPUs that fit the motherboard
    - Neither: the rest of the catalog, unfiltered

    Args:
        selected_product_ids: Ids of the products selected so far
    """
    return service.sequential_compatibility(get_db(), _parse_list_param(selected_product_ids))


# =============================================================================
# CATALOG TOOLS
# =============================================================================


@mcp.tool(annotations=_annotations("Search Products"))
async def search_products(
    query: str | None = None,
    category: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Search the catalog by name, brand or model number (case-insensitive substring).

    Args:
        query: Search text
        category: Category name (e.g., "CPU", "Motherboard")
        status: "Active", "Inactive" or "Out of Stock"
        page: Page number (default 1)
        limit: Results per page (default 15, max 100)
    """
    if query and len(query) > MAX_QUERY_LENGTH:
        return {"error": f"Query too long (max {MAX_QUERY_LENGTH} characters)"}
    return get_db().list_products(
        query=query, category=category, status=status, page=max(1, page), limit=max(1, min(limit, MAX_PAGE_SIZE))
    )


@mcp.tool(annotations=_annotations("Get Product"))
async def get_product(product_id: str) -> dict:
    """Full product record including its attribute map."""
    product = get_db().find_product_by_id(product_id)
    if product is None:
        return {"error": f"Product not found: {product_id}"}
    return product


@mcp.tool(annotations=_annotations("Products By Category"))
async def products_by_category(category_id: int) -> dict:
    """Products in one category plus every attribute key they use."""
    result = get_db().products_by_category(category_id)
    if result is None:
        return {"error": f"Category not found: {category_id}", "hint": "Use list_categories() to see ids"}
    return result


@mcp.tool(annotations=_annotations("List Categories"))
async def list_categories(with_subcategories: bool = False, category: str | None = None) -> dict:
    """List categories, or the subcategories of one category.

    Args:
        with_subcategories: Nest each category's subcategories
        category: Category name; returns only its subcategories
    """
    db = get_db()
    if category:
        if db.find_category_by_name(category) is None:
            return {"error": f"Category not found: '{category}'", "hint": "Call list_categories() with no args"}
        return {"category": category, "subcategories": db.list_subcategories(category)}
    if with_subcategories:
        return {"categories": db.category_tree()}
    return {"categories": db.list_categories()}


@mcp.tool(annotations=_annotations("Attribute Template"))
async def get_attribute_template(category: str | None = None) -> dict:
    """Blank attribute map an admin fills in for a category (CPU, Motherboard, RAM, Storage, GPU, PSU).

    Omit category for every template.
    """
    if not category:
        return {"templates": all_templates()}
    found = get_template(category)
    if found is None:
        return {"error": f"No attributes template for category '{category}'"}
    name, attributes = found
    return {"category": name, "attributes": attributes}


@mcp.tool(annotations=_annotations("Create Product", read_only=False))
async def create_product(
    name: str,
    category: str,
    selling_rate: float,
    brand: str | None = None,
    model_number: str | None = None,
    quantity: int = 0,
    cost_rate: float | None = None,
    status: str = "Active",
    warranty: str | None = None,
    subcategory_id: int | None = None,
    attributes: dict[str, Any] | str | None = None,
) -> dict:
    """Add a product to the catalog.

    Args:
        name: Product name
        category: Existing category name
        selling_rate: Price charged to customers
        attributes: Specification map, e.g. {"socketType": "AM5", "ramType": "DDR5"}
    """
    try:
        return get_db().create_product({
            "name": name,
            "category": category,
            "selling_rate": selling_rate,
            "brand": brand,
            "model_number": model_number,
            "quantity": quantity,
            "cost_rate": cost_rate,
            "status": status,
            "warranty": warranty,
            "subcategory_id": subcategory_id,
            "attributes": _parse_dict_param(attributes),
        })
    except ValueError as e:
        return {"error": str(e)}


@mcp.tool(annotations=_annotations("Update Product", read_only=False))
async def update_product(product_id: str, changes: dict[str, Any] | str) -> dict:
    """Update product fields. An attributes map in changes replaces the stored one.

    Args:
        product_id: Product id
        changes: Fields to change (name, category, brand, model_number, quantity,
            selling_rate, cost_rate, status, warranty, subcategory_id, attributes)
    """
    parsed = _parse_dict_param(changes)
    if parsed is None:
        return {"error": "changes must be an object"}
    try:
        product = get_db().update_product(product_id, parsed)
    except ValueError as e:
        return {"error": str(e)}
    return product if product is not None else {"error": f"Product not found: {product_id}"}


@mcp.tool(annotations=_annotations("Add Product Attributes", read_only=False))
async def add_product_attributes(product_id: str, attributes: dict[str, Any] | str) -> dict:
    """Merge attribute values into a product; existing keys are overwritten, others kept."""
    parsed = _parse_dict_param(attributes)
    if parsed is None:
        return {"error": "attributes must be an object"}
    product = get_db().merge_attributes(product_id, parsed)
    return product if product is not None else {"error": f"Product not found: {product_id}"}


@mcp.tool(annotations=_annotations("Delete Product", read_only=False, destructive=True))
async def delete_product(product_id: str) -> dict:
    if not get_db().delete_product(product_id):
        return {"error": f"Product not found: {product_id}"}
    return {"deleted": product_id}


@mcp.tool(annotations=_annotations("Manage Category", read_only=False, destructive=True))
async def manage_category(
    action: Literal["create", "update", "delete"],
    category_id: int | None = None,
    name: str | None = None,
    description: str | None = None,
) -> dict:
    """Create, rename or delete a category.

    Args:
        action: "create" (needs name), "update" or "delete" (need category_id)
    """
    db = get_db()
    try:
        if action == "create":
            return db.create_category(name or "", description or "")
        if category_id is None:
            return {"error": "category_id is required"}
        if action == "update":
            category = db.update_category(category_id, name, description)
            return category if category is not None else {"error": f"Category not found: {category_id}"}
        if not db.delete_category(category_id):
            return {"error": f"Category not found: {category_id}"}
        return {"deleted": category_id}
    except ValueError as e:
        return {"error": str(e)}


@mcp.tool(annotations=_annotations("Manage Subcategory", read_only=False, destructive=True))
async def manage_subcategory(
    action: Literal["create", "update", "delete"],
    subcategory_id: int | None = None,
    category_id: int | None = None,
    name: str | None = None,
) -> dict:
    """Create, rename/move or delete a subcategory.

    Args:
        action: "create" (needs category_id and name), "update" or "delete" (need subcategory_id)
    """
    db = get_db()
    try:
        if action == "create":
            if category_id is None:
                return {"error": "category_id is required"}
            return db.create_subcategory(category_id, name or "")
        if subcategory_id is None:
            return {"error": "subcategory_id is required"}
        if action == "update":
            sub = db.update_subcategory(subcategory_id, name, category_id)
            return sub if sub is not None else {"error": f"Subcategory not found: {subcategory_id}"}
        if not db.delete_subcategory(subcategory_id):
            return {"error": f"Subcategory not found: {subcategory_id}"}
        return {"deleted": subcategory_id}
    except ValueError as e:
        return {"error": str(e)}


# =============================================================================
# CART TOOLS
# =============================================================================


@mcp.tool(annotations=_annotations("Cart", read_only=False))
async def cart(
    session_id: str,
    action: Literal["get", "add", "update", "remove", "clear"] = "get",
    product_id: str | None = None,
    quantity: int = 1,
) -> dict:
    """View or change the cart for a session.

    Args:
        session_id: Caller's session identifier
        action: "get", "add" (product_id, quantity), "update" (product_id,
            quantity; 0 removes), "remove" (product_id) or "clear"
        product_id: Product for add/update/remove
        quantity: Quantity to add, or new quantity for update
    """
    db = get_db()
    try:
        if action == "get":
            return db.get_cart(session_id)
        if action == "clear":
            db.clear_cart(session_id)
            return {"session_id": session_id, "items": [], "total_amount": 0}
        if not product_id:
            return {"error": "product_id is required"}
        if action == "add":
            return db.add_to_cart(session_id, product_id, quantity)
        if action == "update":
            result = db.update_cart_item(session_id, product_id, quantity)
        else:
            result = db.remove_from_cart(session_id, product_id)
        return result if result is not None else {"error": "Item not found in cart"}
    except ValueError as e:
        return {"error": str(e)}


# =============================================================================
# ORDER TOOLS
# =============================================================================


@mcp.tool(annotations=_annotations("Create Order", read_only=False))
async def create_order(
    customer_name: str,
    address: str,
    items: list[dict[str, Any]] | str,
    type: Literal["Order", "Quotation"] = "Order",
    customer_email: str | None = None,
    customer_phone: str | None = None,
) -> dict:
    """Create an order (takes stock) or a quotation (does not).

    Args:
        items: [{"product_id": ..., "quantity": 2, "price": optional override}]
        type: "Order" or "Quotation"
    """
    parsed_items = _parse_list_param(items)
    if parsed_items is None:
        return {"error": "items must be a list"}
    try:
        return get_db().create_order({
            "customer_name": customer_name,
            "customer_email": customer_email,
            "customer_phone": customer_phone,
            "address": address,
            "items": parsed_items,
            "type": type,
        })
    except ValueError as e:
        return {"error": str(e)}


@mcp.tool(annotations=_annotations("Quotation From Cart", read_only=False))
async def create_quotation_from_cart(
    session_id: str,
    customer_name: str,
    address: str,
    customer_email: str | None = None,
    customer_phone: str | None = None,
) -> dict:
    """Turn the session's cart into a quotation and empty the cart."""
    try:
        return get_db().create_quotation_from_cart(session_id, {
            "customer_name": customer_name,
            "customer_email": customer_email,
            "customer_phone": customer_phone,
            "address": address,
        })
    except ValueError as e:
        return {"error": str(e)}


@mcp.tool(annotations=_annotations("Get Order"))
async def get_order(id: int | None = None, order_id: str | None = None, quote_id: str | None = None) -> dict:
    """Fetch one order or quotation by internal id, order id (O-001) or quote id (Q-001)."""
    db = get_db()
    if id is not None:
        order = db.get_order(id)
    elif order_id:
        order = db.get_by_order_id(order_id)
    elif quote_id:
        order = db.get_by_quote_id(quote_id)
    else:
        return {"error": "Provide id, order_id or quote_id"}
    return order if order is not None else {"error": "Order not found"}


@mcp.tool(annotations=_annotations("Quotation Items"))
async def quotation_items(quote_id: str) -> dict:
    """Line items of a quotation with the current catalog product for each."""
    result = get_db().quotation_items(quote_id)
    return result if result is not None else {"error": f"Quotation not found: {quote_id}"}


@mcp.tool(annotations=_annotations("List Orders"))
async def list_orders(
    type: Literal["Order", "Quotation"] | None = None,
    status: Literal["Pending", "Confirmed", "Cancelled"] | None = None,
    search: str | None = None,
    deleted: bool = False,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Orders and quotations, newest first.

    Args:
        type: Only orders or only quotations
        status: Filter by status
        search: Matches order id, quote id or customer name
        deleted: List soft-deleted quotations instead (other filters ignored)
        page: Page number (default 1)
        limit: Results per page (default 15, max 100)
    """
    db = get_db()
    if deleted:
        return {"orders": db.list_deleted_quotations()}
    if search and len(search) > MAX_QUERY_LENGTH:
        return {"error": f"Search too long (max {MAX_QUERY_LENGTH} characters)"}
    return db.list_orders(type, status, search, page, limit)


@mcp.tool(annotations=_annotations("Update Order", read_only=False))
async def update_order(
    id: int,
    status: Literal["Pending", "Confirmed", "Cancelled"] | None = None,
    changes: dict[str, Any] | str | None = None,
) -> dict:
    """Change an order's status and/or its customer fields, type and items.

    Args:
        id: Internal order id
        status: New status
        changes: customer_name, customer_email, customer_phone, address, type,
            items (replaces all lines; stock is returned and re-taken for orders)
    """
    db = get_db()
    parsed = _parse_dict_param(changes)
    try:
        order = None
        if parsed:
            order = db.update_order(id, parsed)
            if order is None:
                return {"error": f"Order not found: {id}"}
        if status:
            order = db.update_order_status(id, status)
        if order is None:
            return {"error": f"Order not found: {id}"} if db.get_order(id) is None else {"error": "Nothing to update"}
        return order
    except ValueError as e:
        return {"error": str(e)}


@mcp.tool(annotations=_annotations("Delete Or Restore Order", read_only=False, destructive=True))
async def delete_order(id: int, restore: bool = False) -> dict:
    """Delete an order (permanent) or quotation (soft, restorable), or restore a deleted quotation.

    Args:
        id: Internal order id
        restore: Restore a soft-deleted quotation instead of deleting
    """
    db = get_db()
    if restore:
        order = db.restore_quotation(id)
        return order if order is not None else {"error": f"Deleted quotation not found: {id}"}
    try:
        kind = db.delete_order(id)
    except ValueError as e:
        return {"error": str(e)}
    if kind is None:
        return {"error": f"Order not found: {id}"}
    return {"deleted": id, "soft": kind == "soft"}


@mcp.tool(annotations=_annotations("Customers"))
async def customers(search: str | None = None, email: str | None = None) -> dict:
    """Customers grouped by email with their order counts, or every order for one email.

    Args:
        search: Matches name, email or phone
        email: Return this customer's orders instead
    """
    db = get_db()
    if email:
        return {"email": email, "orders": db.customer_orders(email)}
    return {"customers": db.list_customers(search)}


@mcp.tool(annotations=_annotations("Dashboard Stats"))
async def dashboard_stats() -> dict:
    """Totals, orders and sales per year, and product counts per category."""
    return get_db().get_stats()


# Health check endpoint
async def health(request):
    return JSONResponse({
        "status": "healthy",
        "service": "pcparts-catalog",
        "version": __version__,
    })


# Create ASGI app
def create_app():
    """Create the ASGI application."""
    middleware = [
        Middleware(RateLimitMiddleware, requests_per_minute=RATE_LIMIT_REQUESTS),
    ]

    app = mcp.http_app(
        path="/mcp",
        middleware=middleware,
        transport="streamable-http",
        stateless_http=True,
    )

    app.routes.extend(ROUTES)
    app.routes.append(Route("/health", health))

    return app


app = create_app()


class _HealthFilterLog(logging.Filter):
    """Suppress noisy /health access logs from container healthchecks."""

    def filter(self, record: logging.LogRecord) -> bool:
        return "/health" not in record.getMessage()


def main():
    """Run the server."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("uvicorn.access").addFilter(_HealthFilterLog())

    uvicorn.run(
        "pcparts_catalog.server:app",
        host="0.0.0.0",
        port=HTTP_PORT,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
