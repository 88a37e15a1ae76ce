# Overview: Flask API routes for fuel transactions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import shift_service, transaction_service
from ..services.shift_service import ShiftLockedError
from ..services.transaction_service import TransactionError
from ..time_utils import parse_iso_datetime


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

NUMERIC_FIELDS = ("amount", "liters", "price_per_liter")


def _numeric(data: dict) -> dict:
    # JSON numbers arrive as floats; keep their printed value exact
    return {k: str(data[k]) for k in NUMERIC_FIELDS if data.get(k) is not None}


@transactions_bp.post("/")
@transactions_bp.post("")
def create_transaction_route():
    """
    Record a sale.

    Request body:
    {
        "station_id": 1,
        "daily_record_id": 12,
        "payment_type": "CASH",
        "amount": 1500.00,          (or liters + optional product_id / price_per_liter)
        "liters": 48.64,
        "date": "2026-01-05T08:30:00+07:00",  (optional; backdated entries allowed)
        "owner_name": "...",        (required for credit payment types)
        "user_id": 3
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        station_id = data.get("station_id")
        daily_record_id = data.get("daily_record_id")
        payment_type = data.get("payment_type")

        if not all([station_id, daily_record_id, payment_type]):
            return jsonify({"error": "station_id, daily_record_id, and payment_type required"}), 400

        txn = transaction_service.create_transaction(
            station_id,
            daily_record_id,
            payment_type,
            product_id=data.get("product_id"),
            date=parse_iso_datetime(data.get("date")),
            owner_name=data.get("owner_name"),
            license_plate=data.get("license_plate"),
            bill_number=data.get("bill_number"),
            recorded_by_id=data.get("user_id"),
            is_admin=shift_service.is_admin_user(data.get("user_id")),
            **_numeric(data),
        )
        return jsonify({"transaction": txn.to_dict()}), 201

    except ShiftLockedError as e:
        return jsonify({"error": str(e)}), 423
    except TransactionError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:transaction_id>")
def update_transaction_route(transaction_id: int):
    """Administrative correction; locked shifts need an ADMIN user_id."""
    try:
        data = dict(request.get_json(silent=True) or {})
        user_id = data.pop("user_id", None)

        changes = {k: v for k, v in data.items() if k not in NUMERIC_FIELDS}
        changes.update(_numeric(data))
        for name in NUMERIC_FIELDS:
            if name in data and data[name] is None:
                changes[name] = None
        if "date" in changes:
            changes["date"] = parse_iso_datetime(changes["date"])

        txn = transaction_service.update_transaction(
            transaction_id,
            is_admin=shift_service.is_admin_user(user_id),
            **changes,
        )
        return jsonify({"transaction": txn.to_dict()}), 200

    except ShiftLockedError as e:
        return jsonify({"error": str(e)}), 423
    except TransactionError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/void")
def void_transaction_route(transaction_id: int):
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get("user_id")
        txn = transaction_service.void_transaction(
            transaction_id,
            user_id,
            data.get("reason"),
            is_admin=shift_service.is_admin_user(user_id),
        )
        return jsonify({"transaction": txn.to_dict()}), 200

    except ShiftLockedError as e:
        return jsonify({"error": str(e)}), 423
    except TransactionError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to void transaction")
        return jsonify({"error": "Internal server error"}), 500
