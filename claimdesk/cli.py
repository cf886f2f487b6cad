from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from .config import load_project_env, load_settings
from .errors import ClaimDeskError
from .fraud_gate import fraud_tier, fraud_tier_label
from .lifecycle import claim_to_payload
from .logging_setup import configure_logging
from .policy_numbers import classify_policy_number
from .preflight import run_preflight
from .schemas import ClaimStatus
from .store import ClaimStore


def _json_print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=True))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="claimdesk", description="ClaimDesk CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    web = sub.add_parser("serve-web", help="Run the claim adjudication API")
    web.add_argument("--host", default="127.0.0.1")
    web.add_argument("--port", type=int, default=8000)
    web.add_argument("--reload", action="store_true")

    doctor = sub.add_parser("doctor", help="Run environment and runtime preflight checks")
    doctor.add_argument("--strict", action="store_true", help="Treat warnings as failures")

    sub.add_parser("init-db", help="Create the claim store schema")

    classify = sub.add_parser("classify-policy", help="Detect the insurer from a policy number")
    classify.add_argument("--policy-number", required=True)

    tier = sub.add_parser("risk-tier", help="Map a fraud probability to its risk tier")
    tier.add_argument("--probability", type=float, required=True)

    listing = sub.add_parser("list-claims", help="List stored claims, newest first")
    listing.add_argument("--status", choices=[s.value for s in ClaimStatus], default=None)
    listing.add_argument("--policy-holder-id", default=None)

    show = sub.add_parser("show-claim", help="Print one stored claim")
    show.add_argument("--claim-id", required=True)

    return parser


def main() -> None:
    project_root = Path(__file__).resolve().parents[1]
    load_project_env(project_root)

    settings = load_settings(project_root)
    configure_logging(settings.log_level, settings.log_json)
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "serve-web":
        import uvicorn

        uvicorn.run(
            "claimdesk.web_app:create_web_app",
            host=args.host,
            port=args.port,
            reload=bool(args.reload),
            factory=True,
        )
        return

    if args.command == "doctor":
        _json_print(run_preflight(project_root=project_root, strict=args.strict))
        return

    if args.command == "classify-policy":
        result = classify_policy_number(args.policy_number)
        _json_print({"policy_number": args.policy_number.strip(), **result.to_dict()})
        return

    if args.command == "risk-tier":
        if not 0.0 <= args.probability <= 1.0:
            parser.error("--probability must be between 0 and 1")
        tier = fraud_tier(args.probability)
        _json_print(
            {
                "probability": args.probability,
                "tier": tier.value if tier else None,
                "label": fraud_tier_label(args.probability),
            }
        )
        return

    try:
        store = ClaimStore(settings.claims_db, busy_timeout=settings.store_busy_timeout)
    except ClaimDeskError as exc:
        _json_print({**exc.to_dict(), "hint": "Run `python -m claimdesk.cli doctor` to check storage access."})
        return

    if args.command == "init-db":
        _json_print({"status": "ok", "claims_db": str(store.db_path)})
        return

    if args.command == "list-claims":
        status = ClaimStatus(args.status) if args.status else None
        claims = store.list_claims(policy_holder_id=args.policy_holder_id, status=status)
        _json_print({"count": len(claims), "claims": [claim_to_payload(c) for c in claims]})
        return

    if args.command == "show-claim":
        claim = store.get(args.claim_id)
        if claim is None:
            _json_print({"error": "claim_not_found", "claim_id": args.claim_id})
            return
        _json_print(claim_to_payload(claim))
        return

    parser.error("Unknown command")


if __name__ == "__main__":
    main()
