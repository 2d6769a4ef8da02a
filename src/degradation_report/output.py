"""
Structured Output - Export formats for resolved reports.

JSON is the primary output format. Markdown is the human-readable rendering
(header, four-column product table, numbered bibliography). CSV exports the
product table for spreadsheets.
"""
from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from typing import Any, Optional

from degradation_report.models import DegradationReport, Resolution


PRODUCT_COLUMNS = (
    ("substance", "Substância"),
    ("degradation_route", "Via de Degradação"),
    ("environmental_conditions", "Condições Ambientais"),
    ("toxicity_data", "Dados de Toxicidade"),
)


def output_to_json(resolution: Resolution, pretty: bool = True) -> str:
    """Serialize a resolution (report plus provenance) to JSON.

    Args:
        resolution: Resolution returned by the orchestrator
        pretty: If True, format with indentation (default).
                If False, compact single-line output.

    Returns:
        JSON string; report fields use their camelCase wire names
    """
    data = resolution.model_dump(by_alias=True)

    if pretty:
        return json.dumps(data, indent=2, ensure_ascii=False, default=_json_serializer)
    else:
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=_json_serializer)


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for objects not serializable by default."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ").strip()


def generate_products_section(report: DegradationReport) -> str:
    """Markdown table of products, columns in fixed order."""
    if not report.products:
        return "*Nenhum produto de degradação identificado.*"

    header = "| " + " | ".join(title for _, title in PRODUCT_COLUMNS) + " |"
    separator = "|" + "|".join("---" for _ in PRODUCT_COLUMNS) + "|"
    rows = [
        "| " + " | ".join(_escape_cell(getattr(product, field)) for field, _ in PRODUCT_COLUMNS) + " |"
        for product in report.products
    ]
    return "\n".join([header, separator, *rows])


def generate_references_section(report: DegradationReport) -> str:
    """Numbered bibliography in display order."""
    if not report.references:
        return "*Nenhuma referência disponível.*"
    return "\n".join(f"{i}. {ref}" for i, ref in enumerate(report.references, 1))


def output_to_markdown(
    report: DegradationReport,
    substance_name: str,
    generated_at: Optional[datetime] = None,
) -> str:
    """Render a report as a Markdown document.

    Args:
        report: The report to render
        substance_name: Name as the user typed it (used in the header)
        generated_at: Timestamp for the header (default: now)

    Returns:
        Markdown string
    """
    timestamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")

    return f"""# Relatório de Produtos de Degradação

**Substância:** {substance_name}
**Gerado em:** {timestamp}
**Produtos:** {len(report.products)}

## Produtos de Degradação

{generate_products_section(report)}

## Referências Bibliográficas

{generate_references_section(report)}
"""


def output_to_csv(report: DegradationReport) -> str:
    """Export products as CSV.

    Columns: substance, degradationRoute, environmentalConditions, toxicityData

    Returns:
        CSV string that can be parsed by csv.reader or imported into Excel
    """
    string_buffer = io.StringIO()
    writer = csv.writer(string_buffer)

    writer.writerow(["substance", "degradationRoute", "environmentalConditions", "toxicityData"])
    for product in report.products:
        writer.writerow([getattr(product, field) for field, _ in PRODUCT_COLUMNS])

    return string_buffer.getvalue()


def output_to_dict(resolution: Resolution) -> dict:
    """Convert a resolution to a plain dict (for API responses)."""
    return resolution.model_dump(by_alias=True, mode="json")
