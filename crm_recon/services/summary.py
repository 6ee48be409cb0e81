from __future__ import annotations

from ..models.reports import ClientImportReport, InvoiceImportReport

"""SUMMARY line rendering for import runs.

Formats (one line, key=value tokens):

SUMMARY clients accepted={ok}/{total} skipped_unresolved={n} failed={n}
    cancelled={yes|no} elapsed_sec={elapsed}
SUMMARY invoices created={ok}/{total} identical={n} conflicting={n}
    invalid={n} unresolved={n} failed={n} cancelled={yes|no} elapsed_sec={elapsed}
"""

__all__ = [
    "format_seconds",
    "render_client_summary",
    "render_invoice_summary",
]


def format_seconds(value: float) -> str:
    """Integers without decimals, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def render_client_summary(report: ClientImportReport) -> str:
    """
    >>> render_client_summary(ClientImportReport(success_count=4, total=5, failures=()))
    'SUMMARY clients accepted=4/5 skipped_unresolved=0 failed=0 cancelled=no elapsed_sec=0'
    """
    return (
        f"SUMMARY clients accepted={report.success_count}/{report.total} "
        f"skipped_unresolved={report.skipped_unresolved} "
        f"failed={report.failed_count} "
        f"cancelled={_yes_no(report.cancelled)} "
        f"elapsed_sec={format_seconds(report.elapsed_seconds)}"
    )


def render_invoice_summary(report: InvoiceImportReport) -> str:
    return (
        f"SUMMARY invoices created={report.created}/{report.total} "
        f"identical={report.skipped_identical} "
        f"conflicting={report.skipped_conflict} "
        f"invalid={report.skipped_invalid} "
        f"unresolved={report.skipped_unresolved} "
        f"failed={report.failed_count} "
        f"cancelled={_yes_no(report.cancelled)} "
        f"elapsed_sec={format_seconds(report.elapsed_seconds)}"
    )
