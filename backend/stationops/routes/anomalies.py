# Overview: Flask API routes for daily anomalies; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import daily_anomaly_service
from ..services.daily_anomaly_service import DailyAnomalyError
from ..time_utils import parse_iso_date


anomalies_bp = Blueprint("daily_anomalies", __name__, url_prefix="/api/daily-anomalies")


@anomalies_bp.get("/")
@anomalies_bp.get("")
def list_daily_anomalies_route():
    """
    List anomalies.

    Query params: station_id (optional), status=pending|reviewed|all, limit
    """
    try:
        anomalies = daily_anomaly_service.get_daily_anomalies(
            station_id=request.args.get("station_id", type=int),
            status=request.args.get("status", "pending"),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"anomalies": [a.to_dict() for a in anomalies]}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@anomalies_bp.post("/check")
def check_daily_anomaly_route():
    """
    Recompute one station-day and save/update/delete its anomaly.

    Request body: {"station_id": 1, "date": "2026-01-05"}
    """
    try:
        data = request.get_json(silent=True) or {}
        station_id = data.get("station_id")
        day = parse_iso_date(data.get("date"))
        if not station_id or day is None:
            return jsonify({"error": "station_id and date required"}), 400

        check = daily_anomaly_service.check_and_save_daily_anomaly(station_id, day)
        return jsonify(check.to_dict()), 200

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to check daily anomaly")
        return jsonify({"error": "Internal server error"}), 500


@anomalies_bp.post("/scan")
def scan_daily_anomalies_route():
    """Request body: {"station_id": 1, "days": 30}"""
    try:
        data = request.get_json(silent=True) or {}
        station_id = data.get("station_id")
        if not station_id:
            return jsonify({"error": "station_id required"}), 400

        summary = daily_anomaly_service.scan_historical_anomalies(station_id, int(data.get("days", 30)))
        return jsonify(summary), 200

    except DailyAnomalyError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to scan daily anomalies")
        return jsonify({"error": "Internal server error"}), 500


@anomalies_bp.post("/<int:anomaly_id>/review")
def review_daily_anomaly_route(anomaly_id: int):
    """Request body: {"user_id": 1, "note": "Pump 3 calibration, confirmed"}"""
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get("user_id")
        if not user_id:
            return jsonify({"error": "user_id required"}), 400

        anomaly = daily_anomaly_service.mark_daily_anomaly_reviewed(anomaly_id, user_id, data.get("note"))
        return jsonify({"anomaly": anomaly.to_dict()}), 200

    except DailyAnomalyError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to review daily anomaly")
        return jsonify({"error": "Internal server error"}), 500
