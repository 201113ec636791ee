"""HTTP routes for health checks and the client, barber, service and product catalogs."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import barber_scope, require_role
from .errors import BarbershopError, NotFoundError, ValidationError, classify_integrity_error
from .extensions import db
from .models import Barber, Client, Product, Service
from .money import parse_rate, to_cents
from .parsing import json_payload, pagination_args, pagination_meta, parse_bool, parse_int
from .reports import client_history

bp = Blueprint("api", __name__)

BARBER_RATE_FIELDS = (
    "commission_rate_service",
    "commission_rate_chemical_service",
    "commission_rate_product",
)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


def store_failure(exc: SQLAlchemyError, action: str):
    db.session.rollback()
    if isinstance(exc, IntegrityError):
        error = classify_integrity_error(exc)
        current_app.logger.warning("%s rejected by the database: %s", action, error.message)
        return error.to_response()
    current_app.logger.exception(f"Failed to {action}", exc_info=exc)
    return jsonify({"error": "database_error"}), 500


def _required_name(payload: dict) -> str:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    return name


def _optional_text(payload: dict, field: str) -> str | None:
    return (payload.get(field) or "").strip() or None


# --- Clients ---


@bp.get("/clients")
@require_role("admin", "barber")
def list_clients() -> tuple[dict[str, object], int]:
    """List clients with name search and pagination.
    ---
    tags:
      - Clients
    parameters:
      - name: search
        in: query
        type: string
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 10
    responses:
      200:
        description: Clients with pagination metadata
      400:
        description: Invalid parameters
    """
    try:
        page, limit = pagination_args()
        search = request.args.get("search", "").strip()

        query = Client.query
        if search:
            query = query.filter(Client.name.ilike(f"%{search}%"))
        total = query.count()
        clients = query.order_by(Client.name).limit(limit).offset((page - 1) * limit).all()

        return jsonify({
            "clients": [c.to_dict() for c in clients],
            "pagination": pagination_meta(page, limit, total),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch clients")


@bp.post("/clients")
@require_role("admin", "barber")
def create_client() -> tuple[dict[str, object], int]:
    """Register a client.
    ---
    tags:
      - Clients
    responses:
      201:
        description: Client created
      400:
        description: Invalid payload
      409:
        description: Email already registered
    """
    try:
        payload = json_payload()
        client = Client(
            name=_required_name(payload),
            phone=_optional_text(payload, "phone"),
            email=_optional_text(payload, "email"),
        )
        db.session.add(client)
        db.session.commit()
        return jsonify({"client": client.to_dict()}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create client")


@bp.get("/clients/<int:client_id>")
@require_role("admin", "barber")
def get_client(client_id: int) -> tuple[dict[str, object], int]:
    client = db.session.get(Client, client_id)
    if client is None:
        return jsonify({"error": "not_found", "message": "Client not found"}), 404
    return jsonify({"client": client.to_dict()}), 200



@bp.get("/clients/<int:client_id>/history")
@require_role("admin", "barber")
def get_client_history(client_id: int) -> tuple[dict[str, object], int]:
    """A client's appointments, newest first, with visit and spending totals.
    ---
    tags:
      - Clients
    responses:
      200:
        description: Client, appointments and stats; barber tokens see only their own appointments
      404:
        description: Client not found
    """
    try:
        client = db.session.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return jsonify(client_history(client, barber_id=barber_scope())), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch client history")


@bp.put("/clients/<int:client_id>")
@require_role("admin", "barber")
def update_client(client_id: int) -> tuple[dict[str, object], int]:
    """Update a client's name, phone or email.
    ---
    tags:
      - Clients
    responses:
      200:
        description: Client updated
      404:
        description: Client not found
      409:
        description: Email already registered
    """
    try:
        client = db.session.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client not found")

        payload = json_payload()
        if "name" in payload:
            client.name = _required_name(payload)
        if "phone" in payload:
            client.phone = _optional_text(payload, "phone")
        if "email" in payload:
            client.email = _optional_text(payload, "email")
        db.session.commit()
        return jsonify({"client": client.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "update client")


@bp.delete("/clients/<int:client_id>")
@require_role("admin", "barber")
def delete_client(client_id: int) -> tuple[dict[str, str], int]:
    """Delete a client without appointments or sales.
    ---
    tags:
      - Clients
    responses:
      200:
        description: Client deleted
      404:
        description: Client not found
      409:
        description: Client still has appointments or sales
    """
    try:
        client = db.session.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client not found")
        db.session.delete(client)
        db.session.commit()
        return jsonify({"message": "Client deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete client")


# --- Barbers ---


@bp.get("/barbers")
@require_role("admin", "barber")
def list_barbers() -> tuple[dict[str, object], int]:
    """List barbers with name search and pagination.
    ---
    tags:
      - Barbers
    responses:
      200:
        description: Barbers with pagination metadata
    """
    try:
        page, limit = pagination_args()
        search = request.args.get("search", "").strip()

        query = Barber.query
        if search:
            query = query.filter(Barber.name.ilike(f"%{search}%"))
        total = query.count()
        barbers = query.order_by(Barber.name).limit(limit).offset((page - 1) * limit).all()

        return jsonify({
            "barbers": [b.to_dict() for b in barbers],
            "pagination": pagination_meta(page, limit, total),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch barbers")


@bp.post("/barbers")
@require_role("admin")
def create_barber() -> tuple[dict[str, object], int]:
    """Create a barber with commission rates (admin only).
    ---
    tags:
      - Barbers
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            commission_rate_service:
              type: number
            commission_rate_chemical_service:
              type: number
            commission_rate_product:
              type: number
    responses:
      201:
        description: Barber created
      400:
        description: Invalid payload or rate outside [0, 1]
      409:
        description: Email already registered
    """
    try:
        payload = json_payload()
        barber = Barber(
            name=_required_name(payload),
            phone=_optional_text(payload, "phone"),
            email=_optional_text(payload, "email"),
        )
        for field in BARBER_RATE_FIELDS:
            setattr(barber, field, parse_rate(payload.get(field, 0), field))
        db.session.add(barber)
        db.session.commit()
        current_app.logger.info("Barber %s created", barber.barber_id)
        return jsonify({"barber": barber.to_dict()}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create barber")


@bp.get("/barbers/<int:barber_id>")
@require_role("admin", "barber")
def get_barber(barber_id: int) -> tuple[dict[str, object], int]:
    barber = db.session.get(Barber, barber_id)
    if barber is None:
        return jsonify({"error": "not_found", "message": "Barber not found"}), 404
    return jsonify({"barber": barber.to_dict()}), 200


@bp.put("/barbers/<int:barber_id>")
@require_role("admin")
def update_barber(barber_id: int) -> tuple[dict[str, object], int]:
    """Update a barber. New rates only apply to future bookings and sales.
    ---
    tags:
      - Barbers
    responses:
      200:
        description: Barber updated
      400:
        description: Invalid payload
      404:
        description: Barber not found
    """
    try:
        barber = db.session.get(Barber, barber_id)
        if barber is None:
            raise NotFoundError("Barber not found")

        payload = json_payload()
        if "name" in payload:
            barber.name = _required_name(payload)
        if "phone" in payload:
            barber.phone = _optional_text(payload, "phone")
        if "email" in payload:
            barber.email = _optional_text(payload, "email")
        for field in BARBER_RATE_FIELDS:
            if field in payload:
                setattr(barber, field, parse_rate(payload[field], field))
        db.session.commit()
        return jsonify({"barber": barber.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "update barber")


@bp.delete("/barbers/<int:barber_id>")
@require_role("admin")
def delete_barber(barber_id: int) -> tuple[dict[str, str], int]:
    try:
        barber = db.session.get(Barber, barber_id)
        if barber is None:
            raise NotFoundError("Barber not found")
        db.session.delete(barber)
        db.session.commit()
        return jsonify({"message": "Barber deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete barber")


# --- Services ---


def _apply_service_fields(service: Service, payload: dict, partial: bool) -> None:
    if not partial or "name" in payload:
        service.name = _required_name(payload)
    if "description" in payload:
        service.description = _optional_text(payload, "description")
    if not partial or "price" in payload:
        price_cents = to_cents(payload.get("price"), "price")
        if price_cents < 0:
            raise ValidationError("price must not be negative")
        service.price_cents = price_cents
    if not partial or "duration_minutes" in payload:
        duration = parse_int(payload.get("duration_minutes"), "duration_minutes")
        if duration <= 0:
            raise ValidationError("duration_minutes must be greater than zero")
        service.duration_minutes = duration
    if "is_chemical" in payload:
        service.is_chemical = parse_bool(payload["is_chemical"])


@bp.get("/services")
@require_role("admin", "barber")
def list_services() -> tuple[dict[str, object], int]:
    """List services with name search and pagination.
    ---
    tags:
      - Services
    responses:
      200:
        description: Services with pagination metadata
    """
    try:
        page, limit = pagination_args()
        search = request.args.get("search", "").strip()

        query = Service.query
        if search:
            query = query.filter(Service.name.ilike(f"%{search}%"))
        total = query.count()
        services = query.order_by(Service.name).limit(limit).offset((page - 1) * limit).all()

        return jsonify({
            "services": [s.to_dict() for s in services],
            "pagination": pagination_meta(page, limit, total),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch services")


@bp.post("/services")
@require_role("admin", "barber")
def create_service() -> tuple[dict[str, object], int]:
    """Create a service.
    ---
    tags:
      - Services
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            price:
              type: number
            duration_minutes:
              type: integer
            is_chemical:
              type: boolean
    responses:
      201:
        description: Service created
      400:
        description: Invalid payload
    """
    try:
        service = Service(is_chemical=False)
        _apply_service_fields(service, json_payload(), partial=False)
        db.session.add(service)
        db.session.commit()
        return jsonify({"service": service.to_dict()}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create service")


@bp.put("/services/<int:service_id>")
@require_role("admin", "barber")
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    try:
        service = db.session.get(Service, service_id)
        if service is None:
            raise NotFoundError("Service not found")
        _apply_service_fields(service, json_payload(), partial=True)
        db.session.commit()
        return jsonify({"service": service.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "update service")


@bp.delete("/services/<int:service_id>")
@require_role("admin", "barber")
def delete_service(service_id: int) -> tuple[dict[str, str], int]:
    try:
        service = db.session.get(Service, service_id)
        if service is None:
            raise NotFoundError("Service not found")
        db.session.delete(service)
        db.session.commit()
        return jsonify({"message": "Service deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete service")


# --- Products ---


def _apply_product_fields(product: Product, payload: dict, partial: bool) -> None:
    if not partial or "name" in payload:
        product.name = _required_name(payload)
    if "description" in payload:
        product.description = _optional_text(payload, "description")
    if not partial or "price" in payload:
        price_cents = to_cents(payload.get("price"), "price")
        if price_cents < 0:
            raise ValidationError("price must not be negative")
        product.price_cents = price_cents
    if not partial or "stock_quantity" in payload:
        stock = parse_int(payload.get("stock_quantity", 0), "stock_quantity")
        if stock < 0:
            raise ValidationError("stock_quantity must not be negative")
        product.stock_quantity = stock


@bp.get("/products")
@require_role("admin", "barber")
def list_products() -> tuple[dict[str, object], int]:
    """List products with name search and pagination.
    ---
    tags:
      - Products
    parameters:
      - name: low_stock
        in: query
        type: integer
        description: Only products with at most this many units in stock
    responses:
      200:
        description: Products with pagination metadata
    """
    try:
        page, limit = pagination_args()
        search = request.args.get("search", "").strip()

        query = Product.query
        if search:
            query = query.filter(Product.name.ilike(f"%{search}%"))
        if request.args.get("low_stock"):
            threshold = parse_int(request.args["low_stock"], "low_stock")
            query = query.filter(Product.stock_quantity <= threshold)
        total = query.count()
        products = query.order_by(Product.name).limit(limit).offset((page - 1) * limit).all()

        return jsonify({
            "products": [p.to_dict() for p in products],
            "pagination": pagination_meta(page, limit, total),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch products")


@bp.post("/products")
@require_role("admin", "barber")
def create_product() -> tuple[dict[str, object], int]:
    try:
        product = Product()
        _apply_product_fields(product, json_payload(), partial=False)
        db.session.add(product)
        db.session.commit()
        return jsonify({"product": product.to_dict()}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create product")


@bp.put("/products/<int:product_id>")
@require_role("admin", "barber")
def update_product(product_id: int) -> tuple[dict[str, object], int]:
    try:
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        _apply_product_fields(product, json_payload(), partial=True)
        db.session.commit()
        return jsonify({"product": product.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "update product")


@bp.delete("/products/<int:product_id>")
@require_role("admin", "barber")
def delete_product(product_id: int) -> tuple[dict[str, str], int]:
    try:
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        db.session.delete(product)
        db.session.commit()
        return jsonify({"message": "Product deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete product")
