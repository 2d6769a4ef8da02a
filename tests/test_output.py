"""
Tests for output formats (JSON, Markdown, CSV).
"""
import csv
import io
import json
from datetime import datetime

import pytest

from degradation_report.models import DegradationProduct, DegradationReport, Resolution
from degradation_report.output import (
    generate_products_section,
    generate_references_section,
    output_to_csv,
    output_to_dict,
    output_to_json,
    output_to_markdown,
)


@pytest.fixture
def report() -> DegradationReport:
    return DegradationReport(
        products=[
            DegradationProduct(
                substance="NAPQI",
                degradation_route="Oxidação via CYP2E1",
                environmental_conditions="pH fisiológico | 37°C",
                toxicity_data="Hepatotóxico",
            ),
            DegradationProduct(
                substance="p-aminofenol",
                degradation_route="Hidrólise",
                environmental_conditions="pH ácido",
                toxicity_data="Nefrotóxico",
            ),
        ],
        references=["Larson, 2005.", "McGill & Jaeschke, 2013."],
    )


@pytest.fixture
def resolution(report) -> Resolution:
    return Resolution(
        substance_name="paracetamol",
        search_term="Paracetamol",
        report=report,
        source="mock",
        processing_time_ms=12,
        strategy="static_fallback",
    )


class TestJsonOutput:
    def test_pretty(self, resolution):
        output = output_to_json(resolution)
        data = json.loads(output)

        assert "\n" in output
        assert data["source"] == "mock"
        assert data["report"]["products"][0]["degradationRoute"] == "Oxidação via CYP2E1"
        # Non-ASCII kept as-is
        assert "Oxidação" in output

    def test_compact(self, resolution):
        output = output_to_json(resolution, pretty=False)

        assert "\n" not in output
        assert json.loads(output)["processing_time_ms"] == 12

    def test_dict(self, resolution):
        data = output_to_dict(resolution)

        assert data["report"]["references"] == ["Larson, 2005.", "McGill & Jaeschke, 2013."]
        assert data["was_cached"] is False


class TestMarkdownOutput:
    def test_sections(self, report):
        md = output_to_markdown(report, "Paracetamol", generated_at=datetime(2025, 6, 1, 12, 0, 0))

        assert md.startswith("# Relatório de Produtos de Degradação")
        assert "**Substância:** Paracetamol" in md
        assert "**Gerado em:** 2025-06-01 12:00:00" in md
        assert "**Produtos:** 2" in md
        assert md.index("## Produtos de Degradação") < md.index("## Referências Bibliográficas")

    def test_products_table(self, report):
        table = generate_products_section(report).splitlines()

        assert table[0] == "| Substância | Via de Degradação | Condições Ambientais | Dados de Toxicidade |"
        assert table[1] == "|---|---|---|---|"
        assert table[2].startswith("| NAPQI | Oxidação via CYP2E1 |")
        assert len(table) == 4

    def test_pipe_in_cell_escaped(self, report):
        table = generate_products_section(report)
        assert "pH fisiológico \\| 37°C" in table

    def test_numbered_references(self, report):
        assert generate_references_section(report) == "1. Larson, 2005.\n2. McGill & Jaeschke, 2013."

    def test_empty_report(self):
        md = output_to_markdown(DegradationReport(), "Nada")

        assert "*Nenhum produto de degradação identificado.*" in md
        assert "*Nenhuma referência disponível.*" in md


class TestCsvOutput:
    def test_rows(self, report):
        rows = list(csv.reader(io.StringIO(output_to_csv(report))))

        assert rows[0] == ["substance", "degradationRoute", "environmentalConditions", "toxicityData"]
        assert rows[1] == ["NAPQI", "Oxidação via CYP2E1", "pH fisiológico | 37°C", "Hepatotóxico"]
        assert len(rows) == 3

    def test_empty(self):
        rows = list(csv.reader(io.StringIO(output_to_csv(DegradationReport()))))
        assert rows == [["substance", "degradationRoute", "environmentalConditions", "toxicityData"]]
