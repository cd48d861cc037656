"""Ledger telemetry snapshots for dashboards and Prometheus scrapes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from kidwallet_api.api.dependencies.security import require_wallet_api_key
from kidwallet_api.observability.ledger import get_ledger_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/ledger",
    dependencies=[Depends(require_wallet_api_key)],
    summary="Ledger observability snapshot",
)
async def get_ledger_snapshot() -> dict[str, object]:
    return get_ledger_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_wallet_api_key)],
    summary="Prometheus-formatted ledger metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_ledger_store().snapshot()
    lines: list[str] = []

    lines.extend(
        _format_metric("kidwallet_awards_recorded_total", "Point awards written", snapshot.awards.get("recorded", 0))
    )
    lines.extend(
        _format_metric(
            "kidwallet_awards_duplicate_total",
            "Point awards answered from an existing idempotency key",
            snapshot.awards.get("duplicates", 0),
        )
    )
    lines.extend(
        _format_metric(
            "kidwallet_ambiguous_classifications_total",
            "Ledger reasons that matched no category rule",
            snapshot.classifications.get("ambiguous", 0),
        )
    )
    lines.extend(
        _format_metric("kidwallet_excluded_entries_total", "Ledger rows excluded from wallet math", snapshot.exclusions.get("entries", 0))
    )

    for key, value in snapshot.caps.items():
        kind, _, category = key.partition(":")
        lines.extend(
            _format_metric(
                f"kidwallet_cap_{kind}_total",
                "Daily cap clamps grouped by category",
                value,
                labels={"category": category},
            )
        )

    for status_name, value in snapshot.redemptions.items():
        lines.extend(
            _format_metric(
                "kidwallet_redemption_transitions_total",
                "Cash-out workflow transitions",
                value,
                labels={"status": status_name},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
