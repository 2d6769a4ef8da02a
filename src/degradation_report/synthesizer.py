"""
Report Synthesizer - Produces new degradation reports.

Asks a generative model for a strictly structured JSON report and normalizes
whatever comes back into a DegradationReport. Parsing falls through three
strategies, in order:

    JSON object -> pipe-delimited table -> static fallback dataset

The synthesizer never raises to its caller. Model and network failures degrade
to the static fallback dataset, tagged "mock_fallback".
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Protocol

from anthropic import Anthropic, APIError
from pydantic import ValidationError

from degradation_report.errors import Result, SynthesisError
from degradation_report.fallback import fallback_report
from degradation_report.models import DegradationProduct, DegradationReport, ResponseSource
from degradation_report.observability import timed_operation

if TYPE_CHECKING:
    from degradation_report.config import ResolverConfig


logger = logging.getLogger(__name__)


# =============================================================================
# Prompt Template
# =============================================================================


DEGRADATION_PROMPT = """Como um especialista em química analítica sênior, me apresente de forma objetiva em formato de tabela os produtos de degradação da {substance_name}, organizando como atributos os nomes das substâncias formadas, a via de degradação química, as condições ambientais que a favorecem e os dados de toxicidade relatados na literatura científica para esse produto de degradação formado. Ao final, embaixo da tabela, apresente as referências bibliográficas dessas informações apresentadas.

Por favor, formate sua resposta em JSON com a seguinte estrutura:
{{
  "products": [
    {{
      "substance": "nome da substância formada",
      "degradationRoute": "via de degradação química",
      "environmentalConditions": "condições ambientais que favorecem",
      "toxicityData": "dados de toxicidade relatados"
    }}
  ],
  "references": [
    "referência bibliográfica 1",
    "referência bibliográfica 2"
  ]
}}"""

DEFAULT_TEMPERATURE = 0.3

NOT_SPECIFIED = "Não especificado"

GENERIC_LITERATURE_REFERENCE = (
    "Consulte literatura científica especializada para informações detalhadas "
    "sobre produtos de degradação."
)

REFERENCE_MARKERS = ("referência", "bibliografia")


def build_prompt(substance_name: str) -> str:
    """Fill the prompt template for one substance."""
    return DEGRADATION_PROMPT.format(substance_name=substance_name)


# =============================================================================
# Strategy / Result Types
# =============================================================================


class ParseStrategy(str, Enum):
    """How the returned report was obtained."""
    JSON = "json"
    PIPE_TABLE = "pipe_table"
    STATIC_FALLBACK = "static_fallback"


@dataclass(frozen=True)
class Synthesis:
    """Output of one synthesis."""
    report: DegradationReport
    source: ResponseSource  # "gemini", "mock" or "mock_fallback"
    strategy: ParseStrategy
    error: Optional[SynthesisError] = None


# =============================================================================
# Model Clients
# =============================================================================


class ReportModelClient(Protocol):
    """Anything that can turn a prompt into raw completion text."""

    def complete(self, prompt: str, temperature: float) -> str:
        ...


class AnthropicModelClient:
    """Single-turn text completion through the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        timeout: float = 60.0,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = Anthropic(api_key=api_key, timeout=timeout, max_retries=1)

    def complete(self, prompt: str, temperature: float) -> str:
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIError as e:
            raise SynthesisError(f"Model call failed: {e}", operation="complete") from e

        if not response.content:
            raise SynthesisError("Model returned an empty response", operation="complete")
        return response.content[0].text

    def close(self) -> None:
        self._client.close()


# =============================================================================
# JSON Strategy
# =============================================================================


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced top-level ``{...}`` object in ``text``.

    Braces inside JSON string literals are ignored. Returns None when no
    balanced object exists.
    """
    start = text.find("{") if text else -1
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_json_report(text: str) -> DegradationReport:
    """Parse model output with the JSON strategy.

    Raises:
        SynthesisError: No object found, malformed JSON, missing keys,
            or no products
    """
    candidate = extract_json_object(text)
    if candidate is None:
        raise SynthesisError("No JSON object in model response", operation="parse_json")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise SynthesisError(f"Malformed JSON in model response: {e}", operation="parse_json") from e

    missing = [key for key in ("products", "references") if key not in data]
    if missing:
        raise SynthesisError(
            f"Model JSON missing required keys: {', '.join(missing)}",
            operation="parse_json",
        )

    try:
        report = DegradationReport.model_validate(
            {"products": data["products"], "references": data["references"]}
        )
    except ValidationError as e:
        raise SynthesisError(f"Model JSON does not match report schema: {e}", operation="parse_json") from e

    if not report.products:
        raise SynthesisError("Model JSON contains no products", operation="parse_json")
    return report


# =============================================================================
# Pipe-Table Strategy
# =============================================================================


def _is_reference_marker(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in REFERENCE_MARKERS)


def _is_header_or_separator(line: str) -> bool:
    return "Produto" in line or "---" in line


def parse_pipe_table(text: str) -> Optional[DegradationReport]:
    """Parse free text as a pipe-delimited table followed by references.

    Rows need at least four non-empty cells; extra cells are ignored. Every
    non-table line after a "referência"/"bibliografia" marker is a reference.

    Returns:
        The parsed report, or None if no product row was found
    """
    products: List[DegradationProduct] = []
    references: List[str] = []
    in_references = False

    for line in (text or "").split("\n"):
        if not line.strip():
            continue

        if _is_reference_marker(line):
            in_references = True
            continue

        if in_references:
            if "|" not in line:
                references.append(line.strip())
            continue

        if "|" not in line or _is_header_or_separator(line):
            continue

        cells = [cell.strip() for cell in line.split("|")]
        cells = [cell for cell in cells if cell]
        if len(cells) < 4:
            continue

        products.append(DegradationProduct(
            substance=cells[0] or NOT_SPECIFIED,
            degradation_route=cells[1] or NOT_SPECIFIED,
            environmental_conditions=cells[2] or NOT_SPECIFIED,
            toxicity_data=cells[3] or NOT_SPECIFIED,
        ))

    if not products:
        return None

    if not references:
        references.append(GENERIC_LITERATURE_REFERENCE)

    return DegradationReport(products=products, references=references)


# =============================================================================
# Synthesizer
# =============================================================================


class Synthesizer:
    """
    Generates degradation reports from a model or the static dataset.

    Strategy is chosen by whether a model client was supplied:
    - with a client: model call, then JSON / pipe-table parsing
    - without one: the static fallback dataset, tagged "mock"

    Example:
        synth = Synthesizer()
        result = synth.synthesize("Paracetamol")
        print(result.source, len(result.report.products))
    """

    def __init__(
        self,
        model_client: Optional[ReportModelClient] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.model_client = model_client
        self.temperature = temperature

    @property
    def has_model(self) -> bool:
        return self.model_client is not None

    def synthesize(self, substance_name: str) -> Synthesis:
        """Produce a report for ``substance_name``. Never raises."""
        if self.model_client is None:
            logger.info(f"No model configured, using static dataset for {substance_name!r}")
            return Synthesis(
                report=fallback_report(substance_name),
                source="mock",
                strategy=ParseStrategy.STATIC_FALLBACK,
            )

        response = self.generate(substance_name)
        if not response.ok:
            logger.warning(f"Model unavailable for {substance_name!r}: {response.error}")
            return self._fallback(substance_name, response.error)

        return self.parse_response(response.value, substance_name)

    def generate(self, substance_name: str) -> Result[str]:
        """Call the model. Failures come back as a failed Result."""
        prompt = build_prompt(substance_name)
        logger.debug(f"Calling model with prompt:\n{prompt}")
        try:
            with timed_operation("model_call", substance=substance_name) as timer:
                text = self.model_client.complete(prompt, self.temperature)
                timer["response_chars"] = len(text or "")
        except SynthesisError as e:
            return Result.failure(e)
        except Exception as e:
            return Result.failure(SynthesisError(f"Model call failed: {e}", operation="generate"))
        return Result.success(text)

    def parse_response(self, text: str, substance_name: str) -> Synthesis:
        """Normalize raw model text into a report, falling through strategies."""
        try:
            report = parse_json_report(text)
            logger.info(f"Parsed model JSON for {substance_name!r}: {len(report.products)} products")
            return Synthesis(report=report, source="gemini", strategy=ParseStrategy.JSON)
        except SynthesisError as e:
            logger.warning(f"JSON strategy failed for {substance_name!r}: {e}")
            json_error = e

        report = parse_pipe_table(text)
        if report is not None:
            logger.info(f"Parsed model table for {substance_name!r}: {len(report.products)} products")
            return Synthesis(report=report, source="gemini", strategy=ParseStrategy.PIPE_TABLE)

        logger.warning(f"No table rows in model response for {substance_name!r}")
        return self._fallback(substance_name, json_error)

    def _fallback(self, substance_name: str, error: Optional[SynthesisError]) -> Synthesis:
        return Synthesis(
            report=fallback_report(substance_name),
            source="mock_fallback",
            strategy=ParseStrategy.STATIC_FALLBACK,
            error=error,
        )

    def close(self) -> None:
        close = getattr(self.model_client, "close", None)
        if callable(close):
            close()


def build_synthesizer(config: "ResolverConfig") -> Synthesizer:
    """Create a synthesizer from configuration.

    A model client is only created when a credential is configured.
    """
    if not config.has_model_credential:
        return Synthesizer(temperature=config.model_temperature)

    client = AnthropicModelClient(
        api_key=config.model_api_key,
        model=config.model_name,
        max_tokens=config.model_max_tokens,
        timeout=config.model_timeout_seconds,
    )
    return Synthesizer(client, temperature=config.model_temperature)
