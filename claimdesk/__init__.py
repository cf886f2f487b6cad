"""ClaimDesk package."""

__all__ = [
    "cli",
    "config",
    "documents",
    "errors",
    "fraud_gate",
    "lifecycle",
    "logging_setup",
    "payout",
    "policy_numbers",
    "preflight",
    "schemas",
    "scorer",
    "store",
    "submission",
    "web_app",
]
