#!/usr/bin/env python3
"""
Command-line front end for the vehicle tax engine.

Usage:
    python3 scripts/tax_cli.py init-db
    python3 scripts/tax_cli.py seed-tables [FILE]
    python3 scripts/tax_cli.py register-case TENANT_ID [--case-number IMP-2024-0001]
    python3 scripts/tax_cli.py calculate '{"caseId": "...", "engineCapacity": 1600, ...}'
    python3 scripts/tax_cli.py calculate @request.json
    python3 scripts/tax_cli.py finalize ESTIMATION_ID --approved-by USER_ID
    python3 scripts/tax_cli.py show CASE_ID [--json]
    python3 scripts/tax_cli.py verify-audit

Settings come from ``--settings`` or $VEHICLE_TAX_SETTINGS (see
vehicle_tax_config).  ``--db-url`` overrides the settings database.
Structured logs go to stderr; results go to stdout as JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from vehicle_tax_config import DEFAULT_TAX_TABLES_PATH, get_active_settings, load_tax_tables
from vehicle_tax_config.schema import EngineSettings
from vehicle_tax_engines.aggregator import format_payload
from vehicle_tax_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from vehicle_tax_kernel.exceptions import VehicleTaxError
from vehicle_tax_kernel.logging_config import configure_logging
from vehicle_tax_kernel.models.import_case import ImportCase
from vehicle_tax_kernel.selectors.estimation_selector import EstimationSelector
from vehicle_tax_kernel.services.auditor_service import AuditorService, DatabaseAuditSink
from vehicle_tax_services.calculation_service import TaxCalculationService
from vehicle_tax_services.tax_table_service import TaxTableService


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=_json_default))


def _read_request(raw: str) -> Any:
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text()
    return json.loads(raw)


# =============================================================================
# Commands
# =============================================================================


def cmd_init_db(args, settings: EngineSettings) -> int:
    create_tables()
    _emit({"success": True, "data": {"tablesCreated": True}})
    return 0


def cmd_seed_tables(args, settings: EngineSettings) -> int:
    seeds = load_tax_tables(Path(args.file) if args.file else DEFAULT_TAX_TABLES_PATH)
    published = []
    with session_scope() as session:
        service = TaxTableService(
            session, require_full_coverage=settings.require_full_coverage
        )
        for seed in seeds:
            table = service.publish(
                kind=seed.kind,
                version=seed.version,
                effective_date=seed.effective_date,
                brackets=seed.brackets,
                end_date=seed.end_date,
                notes=seed.notes,
            )
            published.append(
                {
                    "tableId": str(table.id),
                    "kind": table.kind,
                    "version": table.version,
                    "effectiveDate": table.effective_date.isoformat(),
                }
            )
    _emit({"success": True, "data": {"published": published}})
    return 0


def cmd_register_case(args, settings: EngineSettings) -> int:
    with session_scope() as session:
        case = ImportCase(tenant_id=UUID(args.tenant_id), case_number=args.case_number)
        session.add(case)
        session.flush()
        case_id = case.id
    _emit({"success": True, "data": {"caseId": str(case_id)}})
    return 0


def cmd_calculate(args, settings: EngineSettings, service: TaxCalculationService) -> int:
    try:
        payload = _read_request(args.request)
    except (OSError, json.JSONDecodeError) as exc:
        _emit({"success": False, "error": f"Unreadable request: {exc}", "code": "VALIDATION_ERROR"})
        return 1
    envelope = service.handle(payload)
    _emit(envelope)
    return 0 if envelope["success"] else 1


def cmd_finalize(args, settings: EngineSettings, service: TaxCalculationService) -> int:
    envelope = service.handle_finalize(args.estimation_id, args.approved_by)
    _emit(envelope)
    return 0 if envelope["success"] else 1


def cmd_show(args, settings: EngineSettings) -> int:
    with session_scope() as session:
        records = EstimationSelector(session).list_for_case(UUID(args.case_id))

    if args.json:
        _emit(
            {
                "success": True,
                "data": [
                    {**format_payload(r), "status": r.status, "calculatedAt": r.calculated_at}
                    for r in records
                ],
            }
        )
        return 0

    if not records:
        print(f"No estimations for case {args.case_id}")
        return 0
    print(f"Case {args.case_id}: {len(records)} estimation(s)")
    for record in records:
        data = format_payload(record)
        print(
            f"  v{record.calculation_version:<3} {record.status:<5} "
            f"ISV {data['isvFinal']:>12}  IVA {data['ivaAmount']:>12}  "
            f"IUC {data['iucEstimated']:>8}  TOTAL {data['totalEstimatedCost']:>12}"
        )
    return 0


def cmd_verify_audit(args, settings: EngineSettings) -> int:
    with session_scope() as session:
        AuditorService(session).validate_chain()
    _emit({"success": True, "data": {"auditChainValid": True}})
    return 0


# =============================================================================
# Main
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Vehicle import tax engine (ISV, IVA, IUC).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  python3 scripts/tax_cli.py init-db\n"
            "  python3 scripts/tax_cli.py seed-tables\n"
            "  python3 scripts/tax_cli.py calculate @request.json\n"
        ),
    )
    parser.add_argument("--settings", type=str, default=None, help="Settings YAML file")
    parser.add_argument("--db-url", type=str, default=None, help="Override the settings database URL")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database tables")

    seed = sub.add_parser("seed-tables", help="Publish tax tables from a seed file")
    seed.add_argument("file", nargs="?", default=None, help="Seed YAML (default: packaged tables)")

    case = sub.add_parser("register-case", help="Register an import case")
    case.add_argument("tenant_id", help="Owning tenant UUID")
    case.add_argument("--case-number", default=None)

    calc = sub.add_parser("calculate", help="Calculate and store a tax estimation")
    calc.add_argument("request", help="Request JSON, or @file")

    fin = sub.add_parser("finalize", help="Approve an estimation")
    fin.add_argument("estimation_id")
    fin.add_argument("--approved-by", required=True)

    show = sub.add_parser("show", help="List the estimations of a case")
    show.add_argument("case_id")
    show.add_argument("--json", action="store_true")

    sub.add_parser("verify-audit", help="Validate the audit hash chain")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        settings = get_active_settings(args.settings)
    except (OSError, ValueError) as exc:
        print(f"  ERROR: Cannot load settings: {exc}", file=sys.stderr)
        return 1

    persistence = settings.persistence
    init_engine_from_url(
        args.db_url or persistence.database_url,
        echo=persistence.echo_sql,
        lock_timeout_seconds=persistence.lock_timeout_seconds,
        statement_timeout_ms=persistence.statement_timeout_ms,
    )

    if args.command in ("calculate", "finalize"):
        factory = get_session_factory()
        service = TaxCalculationService(
            factory,
            settings=settings,
            audit_sink=DatabaseAuditSink(factory),
        )
        handler = cmd_calculate if args.command == "calculate" else cmd_finalize
        return handler(args, settings, service)

    commands = {
        "init-db": cmd_init_db,
        "seed-tables": cmd_seed_tables,
        "register-case": cmd_register_case,
        "show": cmd_show,
        "verify-audit": cmd_verify_audit,
    }
    try:
        return commands[args.command](args, settings)
    except VehicleTaxError as exc:
        _emit({"success": False, "error": str(exc), "code": exc.code})
        return 1
    except ValueError as exc:
        _emit({"success": False, "error": str(exc), "code": "VALIDATION_ERROR"})
        return 1


if __name__ == "__main__":
    sys.exit(main())
