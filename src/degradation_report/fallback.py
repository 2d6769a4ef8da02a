"""
Static fallback dataset.

Used when no model credential is configured, and as the last resort whenever
synthesis fails. Lookup is an exact match on the normalized substance name.
"""
from __future__ import annotations

from typing import Dict

from degradation_report.models import (
    DegradationProduct,
    DegradationReport,
    normalize_substance_name,
)


def _product(substance: str, route: str, conditions: str, toxicity: str) -> DegradationProduct:
    return DegradationProduct(
        substance=substance,
        degradation_route=route,
        environmental_conditions=conditions,
        toxicity_data=toxicity,
    )


KNOWN_SUBSTANCES: Dict[str, DegradationReport] = {
    "paracetamol": DegradationReport(
        products=[
            _product(
                "N-acetil-p-benzoquinona imina (NAPQI)",
                "Oxidação metabólica via CYP2E1",
                "pH fisiológico, presença de oxigênio, temperatura corporal (37°C)",
                "Altamente hepatotóxico, responsável pela toxicidade do paracetamol em overdose",
            ),
            _product(
                "p-aminofenol",
                "Hidrólise da ligação amida",
                "pH ácido (< 4), temperatura elevada (> 60°C), umidade alta",
                "Moderadamente tóxico, pode causar metahemoglobinemia e nefrotoxicidade",
            ),
            _product(
                "Ácido p-hidroxibenzóico",
                "Oxidação do grupo amino seguida de desaminação",
                "Presença de oxidantes, luz UV, pH alcalino (> 8)",
                "Baixa toxicidade, usado como conservante alimentar (E-214)",
            ),
        ],
        references=[
            "Larson, A. M., et al. (2005). Acetaminophen-induced acute liver failure: results of a United States multicenter, prospective study. Hepatology, 42(6), 1364-1372.",
            "McGill, M. R., & Jaeschke, H. (2013). Metabolism and disposition of acetaminophen: recent advances in relation to hepatotoxicity and diagnosis. Pharmaceutical research, 30(9), 2174-2187.",
            "Prescott, L. F. (2000). Paracetamol, alcohol and the liver. British journal of clinical pharmacology, 49(4), 291-301.",
            "Dahlin, D. C., et al. (1984). N-acetyl-p-benzoquinone imine: a cytochrome P-450-mediated oxidation product of acetaminophen. Proceedings of the National Academy of Sciences, 81(5), 1327-1331.",
        ],
    ),
    "ibuprofeno": DegradationReport(
        products=[
            _product(
                "Ácido 2-[4-(2-carboxipropil)fenil]propiônico",
                "Oxidação da cadeia lateral isobutílica",
                "pH neutro (6-8), presença de oxigênio, catálise enzimática (CYP2C9)",
                "Toxicidade renal moderada, menor nefrotoxicidade que o composto original",
            ),
            _product(
                "4-isobutilfenol",
                "Descarboxilação térmica",
                "Temperatura elevada (> 80°C), pH ácido (< 3), ausência de água",
                "Potencial irritante dérmico e ocular, dados limitados de toxicidade sistêmica",
            ),
            _product(
                "Ácido 2-[4-(1-hidroxi-2-metilpropil)fenil]propiônico",
                "Hidroxilação da cadeia lateral",
                "Presença de enzimas CYP, pH fisiológico, temperatura corporal",
                "Perfil de toxicidade similar ao ibuprofeno, menor atividade anti-inflamatória",
            ),
        ],
        references=[
            "Davies, N. M. (1998). Clinical pharmacokinetics of ibuprofen. Clinical pharmacokinetics, 34(2), 101-154.",
            "Rainsford, K. D. (2009). Ibuprofen: pharmacology, efficacy and safety. Inflammopharmacology, 17(6), 275-342.",
            "Mazaleuskaya, L. L., et al. (2015). PharmGKB summary: ibuprofen pathways. Pharmacogenetics and genomics, 25(2), 96-106.",
        ],
    ),
}


GENERIC_REFERENCES = [
    "Para informações específicas sobre produtos de degradação, consulte bases de dados especializadas como PubMed, SciFinder ou Reaxys.",
    "Diretrizes ICH Q1A(R2) - Stability Testing of New Drug Substances and Products.",
    "USP <1225> Validation of Compendial Procedures - Analytical validation guidelines.",
]


def generic_report(substance_name: str) -> DegradationReport:
    """Single generic row for substances missing from the dataset."""
    return DegradationReport(
        products=[
            _product(
                f"Produtos de degradação de {substance_name}",
                "Múltiplas vias de degradação possíveis (hidrólise, oxidação, fotólise)",
                "Variáveis conforme condições específicas (pH, temperatura, luz, oxigênio)",
                "Dados de toxicidade específicos requerem análise detalhada da literatura científica",
            )
        ],
        references=list(GENERIC_REFERENCES),
    )


def fallback_report(substance_name: str) -> DegradationReport:
    """Return the static report for a substance.

    Args:
        substance_name: Name as typed by the caller (case is ignored for lookup)

    Returns:
        A copy of the dataset entry, or the generic report embedding the name
    """
    known = KNOWN_SUBSTANCES.get(normalize_substance_name(substance_name))
    if known is not None:
        return known.model_copy(deep=True)
    return generic_report(substance_name)
