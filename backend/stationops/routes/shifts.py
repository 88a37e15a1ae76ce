# Overview: Flask API routes for shift operations; parses input and returns JSON responses.

# backend/stationops/routes/shifts.py
"""
Shift API Routes

WHY: Station staff open shifts, capture meters and close with a
reconciliation; managers lock finished shifts.

DESIGN:
- Shift lifecycle: open -> close (reconciliation gate) -> lock
- Close is refused with 409 and the reconciliation payload when the variance
  is not GREEN and no variance_note is given
- Close is also refused with 409 when a nozzle sold far off its recent
  average (CRITICAL) and no note is given
- Edits to locked or auto-locked shifts return 423 unless the acting user
  is an administrator
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import reconciliation_service, shift_service
from ..services.reconciliation_service import ShiftNotFoundError
from ..services.shift_service import (
    AnomalyNoteRequiredError,
    ShiftError,
    ShiftLockedError,
    ShiftValidationError,
    VarianceNoteRequiredError,
)
from ..services.variance_policy import to_decimal


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _calc_kwargs(data: dict) -> dict:
    kwargs = {}
    if data.get("expected_other_amount") is not None:
        kwargs["expected_other_amount"] = to_decimal(str(data["expected_other_amount"]))
    return kwargs


@shifts_bp.post("/")
@shifts_bp.post("")
def open_shift_route():
    """
    Open the next shift on a daily record.

    Request body:
    {
        "daily_record_id": 12,
        "user_id": 3
    }
    """
    try:
        data = _json_body()
        daily_record_id = data.get("daily_record_id")
        if not daily_record_id:
            return jsonify({"error": "daily_record_id required"}), 400

        shift = shift_service.open_shift(daily_record_id, data.get("user_id"))
        return jsonify({"shift": shift.to_dict(), "meters": [m.to_dict() for m in shift.meters]}), 201

    except ShiftError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>")
def get_shift_route(shift_id: int):
    try:
        return jsonify(shift_service.get_shift_summary(shift_id)), 200
    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@shifts_bp.put("/<int:shift_id>/meters/<int:nozzle_number>")
def record_meter_route(shift_id: int, nozzle_number: int):
    """
    Capture a nozzle's start and/or end counter.

    Request body:
    {
        "start_reading": 10500.25,   (optional)
        "end_reading": 10600.75,     (optional)
        "user_id": 3
    }
    """
    try:
        data = _json_body()
        start_reading = data.get("start_reading")
        end_reading = data.get("end_reading")
        if start_reading is None and end_reading is None:
            return jsonify({"error": "start_reading or end_reading required"}), 400

        user_id = data.get("user_id")
        meter = shift_service.record_meter(
            shift_id,
            nozzle_number,
            start_reading=to_decimal(str(start_reading)) if start_reading is not None else None,
            end_reading=to_decimal(str(end_reading)) if end_reading is not None else None,
            user_id=user_id,
            is_admin=shift_service.is_admin_user(user_id),
        )
        return jsonify({"meter": meter.to_dict()}), 200

    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ShiftLockedError as e:
        return jsonify({"error": str(e)}), 423
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record meter")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/reconciliation")
def preview_reconciliation_route(shift_id: int):
    """Compute the reconciliation without saving it."""
    try:
        kwargs = _calc_kwargs(request.args)
        result = reconciliation_service.calculate_for_shift(shift_id, **kwargs)
        return jsonify({"reconciliation": result.to_dict()}), 200
    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@shifts_bp.post("/<int:shift_id>/reconciliation")
def save_reconciliation_route(shift_id: int):
    try:
        record = reconciliation_service.save_shift_reconciliation(shift_id, **_calc_kwargs(_json_body()))
        return jsonify({"reconciliation": record.to_dict()}), 200
    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save reconciliation")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/anomalies")
def shift_anomalies_route(shift_id: int):
    """Per-nozzle comparison against the 7-day average (pre-close warning)."""
    try:
        days = request.args.get("days", default=7, type=int)
        return jsonify(shift_service.check_shift_anomalies(shift_id, days=days)), 200
    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@shifts_bp.post("/<int:shift_id>/close")
def close_shift_route(shift_id: int):
    """
    Close a shift.

    Request body:
    {
        "user_id": 3,
        "variance_note": "Customer paid yesterday's credit in cash",  (required unless GREEN)
        "anomaly_note": "Tanker refill of customer drums",            (required on a CRITICAL nozzle anomaly;
                                                                        falls back to variance_note)
        "expected_other_amount": 0                                     (optional)
    }
    """
    try:
        data = _json_body()
        shift, reconciliation = shift_service.close_shift(
            shift_id,
            data.get("user_id"),
            data.get("variance_note"),
            anomaly_note=data.get("anomaly_note"),
            **_calc_kwargs(data),
        )
        return jsonify({"shift": shift.to_dict(), "reconciliation": reconciliation.to_dict()}), 200

    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ShiftValidationError as e:
        return jsonify({"error": str(e), "errors": e.errors}), 400
    except VarianceNoteRequiredError as e:
        return jsonify({
            "error": str(e),
            "requires_note": True,
            "reconciliation": e.result.to_dict(),
        }), 409
    except AnomalyNoteRequiredError as e:
        return jsonify({
            "error": str(e),
            "requires_note": True,
            "anomalies": e.report["anomalies"],
        }), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/lock")
def lock_shift_route(shift_id: int):
    try:
        data = _json_body()
        shift = shift_service.lock_shift(shift_id, data.get("user_id"))
        return jsonify({"shift": shift.to_dict()}), 200

    except ShiftNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ShiftError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to lock shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/meter-anomalies")
def pending_meter_anomalies_route():
    """Unreviewed nozzle anomalies saved at shift close. Query params: station_id, limit"""
    anomalies = shift_service.get_pending_meter_anomalies(
        station_id=request.args.get("station_id", type=int),
        limit=request.args.get("limit", default=50, type=int),
    )
    return jsonify({"anomalies": [a.to_dict() for a in anomalies]}), 200


@shifts_bp.post("/meter-anomalies/<int:anomaly_id>/review")
def review_meter_anomaly_route(anomaly_id: int):
    """Request body: {"user_id": 1}"""
    try:
        data = _json_body()
        user_id = data.get("user_id")
        if not user_id:
            return jsonify({"error": "user_id required"}), 400

        anomaly = shift_service.mark_meter_anomaly_reviewed(anomaly_id, user_id)
        return jsonify({"anomaly": anomaly.to_dict()}), 200

    except ShiftError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to review meter anomaly")
        return jsonify({"error": "Internal server error"}), 500
