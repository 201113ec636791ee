"""Shop expense routes (admin only)."""
from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from .auth import require_role
from .errors import BarbershopError, NotFoundError, ValidationError
from .extensions import db
from .models import EXPENSE_CATEGORIES, Expense
from .money import to_cents
from .parsing import json_payload, pagination_args, pagination_meta, parse_date
from .routes import store_failure

bp_expenses = Blueprint("expenses", __name__)


def _apply_expense_fields(expense: Expense, payload: dict, partial: bool) -> None:
    if not partial or "description" in payload:
        description = (payload.get("description") or "").strip()
        if not description:
            raise ValidationError("description is required")
        expense.description = description
    if not partial or "amount" in payload:
        amount_cents = to_cents(payload.get("amount"), "amount")
        if amount_cents <= 0:
            raise ValidationError("amount must be greater than zero")
        expense.amount_cents = amount_cents
    if not partial or "category" in payload:
        category = (payload.get("category") or "").strip().lower()
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(f"category must be one of: {', '.join(EXPENSE_CATEGORIES)}")
        expense.category = category
    if not partial or "expense_date" in payload:
        expense.expense_date = (
            parse_date(payload["expense_date"], "expense_date") if payload.get("expense_date") else date.today()
        )
    if "notes" in payload:
        expense.notes = (payload.get("notes") or "").strip() or None


def _get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError("Expense not found")
    return expense


@bp_expenses.get("/expenses")
@require_role("admin")
def list_expenses() -> tuple[dict[str, object], int]:
    """List expenses, newest first, with the total of every match.
    ---
    tags:
      - Expenses
    parameters:
      - name: category
        in: query
        type: string
      - name: search
        in: query
        type: string
        description: Matches description or notes
      - name: start
        in: query
        type: string
        format: date
      - name: end
        in: query
        type: string
        format: date
        description: Inclusive
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
        description: Expenses, their total and pagination metadata
      400:
        description: Invalid parameters
    """
    try:
        page, limit = pagination_args()
        query = Expense.query
        if request.args.get("category"):
            query = query.filter(Expense.category == request.args["category"].strip().lower())
        search = request.args.get("search", "").strip()
        if search:
            query = query.filter(or_(Expense.description.ilike(f"%{search}%"), Expense.notes.ilike(f"%{search}%")))
        if request.args.get("start"):
            query = query.filter(Expense.expense_date >= parse_date(request.args["start"], "start"))
        if request.args.get("end"):
            query = query.filter(Expense.expense_date <= parse_date(request.args["end"], "end"))

        total = query.count()
        total_cents = sum(row.amount_cents for row in query.with_entities(Expense.amount_cents))
        expenses = (
            query.order_by(Expense.expense_date.desc(), Expense.expense_id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )
        return jsonify({
            "expenses": [e.to_dict() for e in expenses],
            "total_amount_cents": total_cents,
            "pagination": pagination_meta(page, limit, total),
        }), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "fetch expenses")


@bp_expenses.get("/expenses/<int:expense_id>")
@require_role("admin")
def get_expense(expense_id: int) -> tuple[dict[str, object], int]:
    try:
        return jsonify({"expense": _get_expense(expense_id).to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()


@bp_expenses.post("/expenses")
@require_role("admin")
def create_expense() -> tuple[dict[str, object], int]:
    """Record an expense.
    ---
    tags:
      - Expenses
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required: [description, amount, category]
          properties:
            description:
              type: string
            amount:
              type: number
            category:
              type: string
              enum: [rent, electricity, water, internet, cleaning_supplies, work_materials, marketing,
                     equipment, maintenance, other]
            expense_date:
              type: string
              format: date
              description: Defaults to today
            notes:
              type: string
    responses:
      201:
        description: Expense created
      400:
        description: Missing description, non-positive amount or unknown category
    """
    try:
        expense = Expense()
        _apply_expense_fields(expense, json_payload(), partial=False)
        db.session.add(expense)
        db.session.commit()
        current_app.logger.info(
            "Expense %s of %d cents recorded by user %s",
            expense.expense_id, expense.amount_cents, g.identity.get("user_id"),
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "create expense")


@bp_expenses.put("/expenses/<int:expense_id>")
@require_role("admin")
def update_expense(expense_id: int) -> tuple[dict[str, object], int]:
    try:
        expense = _get_expense(expense_id)
        _apply_expense_fields(expense, json_payload(), partial=True)
        db.session.commit()
        return jsonify({"expense": expense.to_dict()}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "update expense")


@bp_expenses.delete("/expenses/<int:expense_id>")
@require_role("admin")
def delete_expense(expense_id: int) -> tuple[dict[str, str], int]:
    try:
        expense = _get_expense(expense_id)
        db.session.delete(expense)
        db.session.commit()
        return jsonify({"message": "Expense deleted successfully"}), 200
    except BarbershopError as exc:
        return exc.to_response()
    except SQLAlchemyError as exc:
        return store_failure(exc, "delete expense")
