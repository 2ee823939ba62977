"""
Inspect and check the assessment catalog from the command line.

    python scripts/check_catalog.py list --scope example.edu
    python scripts/check_catalog.py inspect ASSESS_IT_005
    python scripts/check_catalog.py verify ASSESS_IT_005 --repair
    python scripts/check_catalog.py export ASSESS_IT_005 --output it_005.json

Exits with status 1 when an assessment is missing or inconsistent.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Sequence
from pathlib import Path

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from assessment_catalog.application.api import (  # noqa: E402
    build_catalog_service,
    get_assessment,
    list_assessments,
    repair_assessment,
    verify_assessment,
)
from assessment_catalog.domain.services import CatalogService  # noqa: E402
from assessment_catalog.infrastructure.exceptions import CatalogError  # noqa: E402
from assessment_catalog.utils.exports import (  # noqa: E402
    assessments_to_frame,
    batches_to_frame,
    make_json_export_payload,
    questions_to_frame,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assessment catalog diagnostics")
    parser.add_argument(
        "--init-db", action="store_true", help="Create missing catalog tables before running"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List assessment headers")
    list_cmd.add_argument("--scope")
    list_cmd.add_argument("--category-code")
    list_cmd.add_argument("--page-size", type=int, default=None)

    inspect_cmd = sub.add_parser("inspect", help="Show the batch records of an assessment")
    inspect_cmd.add_argument("assessment_id")

    verify_cmd = sub.add_parser("verify", help="Check header entities against stored batches")
    verify_cmd.add_argument("assessment_id")
    verify_cmd.add_argument("--repair", action="store_true", help="Fix inconsistencies found")

    export_cmd = sub.add_parser("export", help="Write an assessment as JSON")
    export_cmd.add_argument("assessment_id")
    export_cmd.add_argument("--output", type=Path, help="File to write (stdout if omitted)")
    return parser


def cmd_list(service: CatalogService, args: argparse.Namespace) -> int:
    filters = {"scope": args.scope, "categoryCode": args.category_code}
    headers = []
    token = None
    while True:
        page = list_assessments(
            service, filters, page_size=args.page_size, continuation_token=token
        )
        headers.extend(page.items)
        if not page.has_more:
            break
        token = page.continuation_token

    print(f"Found {len(headers)} assessment(s)")
    if headers:
        print(assessments_to_frame(headers).to_string(index=False))
    return 0


def cmd_inspect(service: CatalogService, args: argparse.Namespace) -> int:
    assessment = get_assessment(service, args.assessment_id)
    if assessment is None:
        print(f"Assessment {args.assessment_id} not found")
        return 1

    records = service.batch_records(args.assessment_id)
    print(f"{args.assessment_id} in scope {assessment['scope']}: {len(records)} batch record(s)")
    if records:
        print(batches_to_frame(records).to_string(index=False))
    questions = assessment.get("questions") or []
    if questions:
        print()
        print(questions_to_frame(questions).to_string(index=False))
    return 0


def cmd_verify(service: CatalogService, args: argparse.Namespace) -> int:
    report = verify_assessment(service, args.assessment_id)
    if report.is_consistent:
        print(f"{args.assessment_id} is consistent ({len(report.batch_labels)} batch(es))")
        return 0

    for issue in report.issues:
        print(f"- {issue}")
    if not args.repair:
        return 1

    report = repair_assessment(service, args.assessment_id)
    if report.is_consistent:
        print(f"Repaired {args.assessment_id}")
        return 0
    print(f"{args.assessment_id} still has issues after repair:")
    for issue in report.issues:
        print(f"- {issue}")
    return 1


def cmd_export(service: CatalogService, args: argparse.Namespace) -> int:
    assessment = get_assessment(service, args.assessment_id)
    if assessment is None:
        print(f"Assessment {args.assessment_id} not found")
        return 1

    report = verify_assessment(service, args.assessment_id)
    payload = make_json_export_payload(assessment, report.to_dict())
    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        print(f"Wrote {args.output}")
    else:
        print(payload)
    return 0 if report.is_consistent else 1


COMMANDS = {
    "list": cmd_list,
    "inspect": cmd_inspect,
    "verify": cmd_verify,
    "export": cmd_export,
}


def main(argv: Sequence[str] | None = None, service: CatalogService | None = None) -> int:
    args = build_parser().parse_args(argv)
    if service is None:
        service = build_catalog_service(create_schema=args.init_db)
    try:
        return COMMANDS[args.command](service, args)
    except CatalogError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
