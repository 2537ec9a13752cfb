# Overview: Liveness and database health endpoints for the storefront backend.

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, StockReservation
from ..models.catalog import RESERVATION_ACTIVE
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Round trip to the database plus a per-collection order count.

    Never raises; a failing database is reported as "unhealthy".
    """
    started = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
        by_partition = dict(
            db.session.query(Order.partition, func.count(Order.id)).group_by(Order.partition).all()
        )
        active_holds = (
            db.session.query(func.count(StockReservation.id))
            .filter(StockReservation.status == RESERVATION_ACTIVE)
            .scalar()
        )
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "details": {
            "ordersByCollection": by_partition,
            "activeReservations": active_holds or 0,
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }, 200 if healthy else 503


@system_bp.get("/version")
def version():
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
