"""
Workload Insights CLI

- serve: run the HTTP API with uvicorn
- init-db: create database tables
- seed: create tables, system categories and a first admin
- report: write a workload report to REPORTS_DIR
- status: show database, provider and row-count status
"""
from __future__ import annotations

import argparse
import json
from typing import Any, Dict

import config
from ai_providers import configured_providers
from database import Activity, Category, User, health_check, init_db, new_session, seed_defaults


def get_status() -> Dict[str, Any]:
    ok, latency_ms, error = health_check()
    status: Dict[str, Any] = {
        "environment": config.APP_ENV,
        "database": "connected" if ok else f"unavailable ({error})",
        "database_latency_ms": latency_ms,
        "ai_providers": ", ".join(configured_providers()) or "none (mock fallback)",
        "audit_log_dir": str(config.AUDIT_LOG_DIR),
        "reports_dir": str(config.REPORTS_DIR),
    }
    if ok:
        session = new_session()
        try:
            status["users"] = session.query(User).count()
            status["categories"] = session.query(Category).count()
            status["activities"] = session.query(Activity).count()
            status["open_activities"] = (
                session.query(Activity).filter(Activity.status.in_(("Open", "In Progress"))).count()
            )
        finally:
            session.close()
    return status


def print_status() -> None:
    status = get_status()
    print("Workload Insights Status")
    print("========================")
    for key, value in status.items():
        print(f"{key}: {value}")


def seed(admin_phone: str, admin_name: str) -> Dict[str, Any]:
    init_db()
    session = new_session()
    try:
        return seed_defaults(session, admin_phone=admin_phone, admin_name=admin_name)
    finally:
        session.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Workload Insights backend")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("init-db", help="Create database tables")

    seed_parser = subparsers.add_parser("seed", help="Insert system categories and a first admin")
    seed_parser.add_argument("--admin-phone", default="+27000000001")
    seed_parser.add_argument("--admin-name", default="System Admin")

    report_parser = subparsers.add_parser("report", help="Write a workload report")
    report_parser.add_argument("--days", type=int, default=7, help="Reporting period in days")

    subparsers.add_parser("status", help="Show system status")

    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn
        uvicorn.run("api_server:app", host=args.host, port=args.port, reload=args.reload)
        return

    if args.command == "init-db":
        init_db()
        print(json.dumps({"status": "success", "message": "Tables created"}, indent=2))
        return

    if args.command == "seed":
        print(json.dumps(seed(args.admin_phone, args.admin_name), indent=2))
        return

    if args.command == "report":
        from scheduler.tasks.workload_report import generate_report
        path = generate_report(days=args.days)
        print(json.dumps({"status": "success", "report": str(path)}, indent=2))
        return

    if args.command == "status":
        print_status()
        return


if __name__ == "__main__":
    main()
