# Overview: Catalog reads plus the normalization rules for legacy product data (prices, category buckets).

from __future__ import annotations

from ..extensions import db
from ..models import Product
from ..validation import NotFoundError, ValidationError, to_cents, try_coerce_id


# Legacy catalogs spell the price several ways; first numeric one wins
PRICE_FIELD_CANDIDATES = ("SellingPrice", "sellingPrice", "Price", "price")

DEFAULT_CATEGORY_BUCKET = "other"

# Ordered: the first bucket with a matching keyword wins
CATEGORY_BUCKET_KEYWORDS = (
    ("paints", ("paint", "painting")),
    ("tools-accessories", (
        "power-tools", "powertools", "hand-tools", "handtools", "tool", "tools", "accessor",
    )),
    ("building-materials-aggregates", (
        "building-materials", "aggregate", "cement", "sand", "gravel", "hollow",
        "plywood", "wood", "lumber", "tile", "roof",
    )),
    ("electrical-supplies", ("electrical", "wire", "breaker", "outlet", "switch")),
    ("plumbing-fixtures", ("plumbing", "fixture", "pipe", "fitting", "faucet", "valve")),
    ("fasteners-consumables", (
        "fastener", "screw", "nail", "bolt", "nut", "consumable", "adhesive", "sealant", "tape",
    )),
)


def normalize_price_cents(raw: dict) -> int | None:
    """
    Pick the first price field that parses as a number.

    Returns None when no candidate is numeric (unpriced product).
    """
    for key in PRICE_FIELD_CANDIDATES:
        value = raw.get(key)
        if value is None or value == "" or isinstance(value, bool):
            continue
        try:
            return to_cents(value, field=key)
        except ValidationError:
            continue
    return None


def normalize_category_bucket(category: str | None) -> str:
    if not category:
        return DEFAULT_CATEGORY_BUCKET
    lowered = str(category).strip().lower()
    for bucket, keywords in CATEGORY_BUCKET_KEYWORDS:
        if lowered == bucket or any(k in lowered for k in keywords):
            return bucket
    return DEFAULT_CATEGORY_BUCKET


def list_products(*, category: str | None = None, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id) -> Product:
    pid = try_coerce_id(product_id)
    product = db.session.get(Product, pid) if pid is not None else None
    if product is None:
        raise NotFoundError("Product not found")
    return product


def import_products(records: list[dict]) -> dict:
    """
    Upsert legacy catalog records (used by `flask products import`).

    Records carrying an integer `id` update that product; others are created.
    Commits once at the end.
    """
    created = updated = skipped = 0
    for raw in records:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        name = (raw.get("name") or raw.get("Name") or "").strip()
        if not name:
            skipped += 1
            continue

        pid = try_coerce_id(raw.get("id"))
        product = db.session.get(Product, pid) if pid is not None else None
        if product is None:
            product = Product(name=name)
            db.session.add(product)
            created += 1
        else:
            updated += 1

        product.name = name
        product.category = raw.get("category") or raw.get("Category") or product.category
        product.description = raw.get("description", product.description)
        product.image_url = raw.get("image") or raw.get("imageUrl") or product.image_url
        price = normalize_price_cents(raw)
        if price is not None:
            product.price_cents = price

        stock = raw.get("stockQuantity", raw.get("stock"))
        if isinstance(stock, int) and not isinstance(stock, bool) and stock >= 0:
            product.stock_quantity = stock
        if "isActive" in raw:
            product.is_active = bool(raw["isActive"])

    db.session.commit()
    return {"created": created, "updated": updated, "skipped": skipped}
