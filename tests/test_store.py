"""
Tests for the substance stores.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from degradation_report.errors import StoreError
from degradation_report.models import (
    DegradationProduct,
    DegradationReport,
    ResolutionRecord,
    SystemEvent,
)
from degradation_report.store import InMemorySubstanceStore, SupabaseSubstanceStore


# =============================================================================
# Fixtures
# =============================================================================


def make_report(substance: str = "4-isobutilfenol", references: int = 1) -> DegradationReport:
    """Create a DegradationReport for testing."""
    return DegradationReport(
        products=[
            DegradationProduct(
                substance=substance,
                degradation_route="Descarboxilação térmica",
                environmental_conditions="Temperatura elevada",
                toxicity_data="Irritante",
            )
        ],
        references=[f"Referência {i}" for i in range(1, references + 1)],
    )


def make_record(
    substance_name: str = "ibuprofeno",
    client_ip: str = "10.0.0.1",
    timestamp: datetime | None = None,
) -> ResolutionRecord:
    """Create a ResolutionRecord for testing."""
    return ResolutionRecord(
        substance_name=substance_name,
        search_term=substance_name.title(),
        client_ip=client_ip,
        user_agent="pytest",
        response_source="mock",
        processing_time_ms=12,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def make_response(payload=None, status_error: Exception | None = None) -> MagicMock:
    """Create a fake requests.Response."""
    response = MagicMock()
    response.content = b"payload" if payload is not None else b""
    response.json.return_value = payload
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


@pytest.fixture
def store() -> InMemorySubstanceStore:
    """Create an empty in-memory store."""
    return InMemorySubstanceStore()


@pytest.fixture
def session() -> MagicMock:
    """Create a fake HTTP session."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def remote(session: MagicMock) -> SupabaseSubstanceStore:
    """Create a Supabase store over the fake session."""
    session.headers = {}
    return SupabaseSubstanceStore("https://proj.supabase.co/", "service-key", session=session)


# =============================================================================
# In-Memory Store
# =============================================================================


class TestInMemoryLookupAndSave:
    """Tests for lookup/save on the in-memory store."""

    def test_lookup_missing(self, store: InMemorySubstanceStore) -> None:
        assert store.lookup("paracetamol") is None

    def test_save_then_lookup(self, store: InMemorySubstanceStore) -> None:
        report = make_report()
        store.save("Ibuprofeno", "Ibuprofeno", report, "gemini", 120)

        assert store.lookup("ibuprofeno") == report

    def test_lookup_normalizes_key(self, store: InMemorySubstanceStore) -> None:
        store.save("ibuprofeno", "ibuprofeno", make_report(), "mock", 5)

        assert store.lookup("  IBUPROFENO ") is not None

    def test_save_upserts(self, store: InMemorySubstanceStore) -> None:
        store.save("Ibuprofeno", "Ibuprofeno", make_report("primeiro"), "mock", 5)
        store.save("IBUPROFENO", "IBUPROFENO", make_report("segundo"), "gemini", 7)

        assert len(store) == 1
        assert store.lookup("ibuprofeno").products[0].substance == "segundo"

    def test_payload_is_structured(self, store: InMemorySubstanceStore) -> None:
        store.save("Ibuprofeno", "Ibuprofeno", make_report(), "mock", 5)

        row = store._reports["ibuprofeno"]
        assert isinstance(row["payload"]["products"], list)
        assert row["payload"]["products"][0]["degradationRoute"] == "Descarboxilação térmica"
        assert row["search_term"] == "Ibuprofeno"
        assert row["response_source"] == "mock"

    def test_lookup_returns_independent_copies(self, store: InMemorySubstanceStore) -> None:
        store.save("x", "x", make_report(), "mock", 1)

        first = store.lookup("x")
        first.references.append("mutated")

        assert store.lookup("x").references == ["Referência 1"]

    def test_lookup_without_products_is_not_found(self, store: InMemorySubstanceStore) -> None:
        store.save("vazia", "Vazia", DegradationReport(references=["Referência 1"]), "mock", 1)

        assert store.lookup("vazia") is None
        assert len(store) == 1

    def test_repr(self, store: InMemorySubstanceStore) -> None:
        assert "substances=0" in repr(store)


class TestInMemoryAnalytics:
    """Tests for search statistics and recent searches."""

    def test_empty(self, store: InMemorySubstanceStore) -> None:
        assert store.search_statistics() == []
        assert store.recent_searches() == []

    def test_statistics_counts_and_order(self, store: InMemorySubstanceStore) -> None:
        store.log_resolution(make_record("paracetamol", "1.1.1.1"))
        store.log_resolution(make_record("ibuprofeno", "1.1.1.1"))
        store.log_resolution(make_record("ibuprofeno", "2.2.2.2"))
        store.log_resolution(make_record("ibuprofeno", "2.2.2.2"))

        stats = store.search_statistics()

        assert [s.substance_name for s in stats] == ["ibuprofeno", "paracetamol"]
        assert stats[0].search_count == 3
        assert stats[0].unique_users == 2
        assert stats[1].unique_users == 1

    def test_statistics_last_searched_and_dcb_name(self, store: InMemorySubstanceStore) -> None:
        older = datetime(2025, 1, 1, tzinfo=timezone.utc)
        newer = older + timedelta(days=3)
        store.save("Ibuprofeno", "Ibuprofeno", make_report(), "mock", 5)
        store.log_resolution(make_record("ibuprofeno", timestamp=newer))
        store.log_resolution(make_record("ibuprofeno", timestamp=older))

        stat = store.search_statistics()[0]

        assert stat.last_searched == newer
        assert stat.dcb_name == "Ibuprofeno"

    def test_statistics_limit(self, store: InMemorySubstanceStore) -> None:
        for name in ("a", "b", "c"):
            store.log_resolution(make_record(name))

        assert len(store.search_statistics(limit=2)) == 2

    def test_recent_newest_first(self, store: InMemorySubstanceStore) -> None:
        base = datetime(2025, 6, 1, tzinfo=timezone.utc)
        for i, name in enumerate(["a", "b", "c"]):
            store.log_resolution(make_record(name, timestamp=base + timedelta(minutes=i)))

        recent = store.recent_searches(limit=2)

        assert [r.substance_name for r in recent] == ["c", "b"]
        assert recent[0].response_source == "mock"

    def test_system_events_appended(self, store: InMemorySubstanceStore) -> None:
        store.record_system_event(SystemEvent(component="search", action="start", message="m"))

        assert [e.action for e in store.get_events()] == ["start"]


# =============================================================================
# Supabase Store
# =============================================================================


class TestSupabaseStore:
    """Tests for the RPC-backed store (HTTP session mocked)."""

    def test_sets_auth_headers(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        assert session.headers["apikey"] == "service-key"
        assert session.headers["Authorization"] == "Bearer service-key"

    def test_lookup_calls_procedure(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response(make_report().to_payload())

        report = remote.lookup("Ibuprofeno")

        assert report == make_report()
        url = session.post.call_args.args[0]
        assert url == "https://proj.supabase.co/rest/v1/rpc/get_substance_data"
        assert session.post.call_args.kwargs["json"] == {"substance_name": "ibuprofeno"}

    def test_lookup_row_list(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response([make_report().to_payload()])

        assert remote.lookup("ibuprofeno") == make_report()

    def test_lookup_not_found(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response(None)

        assert remote.lookup("desconhecida") is None

    def test_lookup_without_products_is_not_found(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response({"products": None, "references": None})

        assert remote.lookup("vazia") is None

    def test_lookup_transport_failure(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(StoreError, match="get_substance_data"):
            remote.lookup("ibuprofeno")

    def test_lookup_http_error(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response(
            {"message": "boom"}, status_error=requests.HTTPError("500 Server Error")
        )

        with pytest.raises(StoreError):
            remote.lookup("ibuprofeno")

    def test_lookup_invalid_payload(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response({"products": [{"substance": ""}], "references": []})

        with pytest.raises(StoreError, match="schema-valid"):
            remote.lookup("ibuprofeno")

    def test_save_passes_structured_values(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response(None)

        remote.save("Ibuprofeno", "Ibuprofeno", make_report(references=2), "gemini", 340)

        url = session.post.call_args.args[0]
        params = session.post.call_args.kwargs["json"]
        assert url.endswith("/rpc/save_degradation_data_safe")
        assert params["substance_name"] == "ibuprofeno"
        assert params["search_term"] == "Ibuprofeno"
        assert params["products"][0]["toxicityData"] == "Irritante"
        assert params["references_list"] == ["Referência 1", "Referência 2"]
        assert params["response_source"] == "gemini"
        assert params["processing_time_ms"] == 340

    def test_save_failure_raises_store_error(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.side_effect = requests.Timeout("slow")

        with pytest.raises(StoreError):
            remote.save("x", "x", make_report(), "mock", 1)

    def test_log_resolution(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response(None)

        remote.log_resolution(make_record("paracetamol", "9.9.9.9"))

        params = session.post.call_args.kwargs["json"]
        assert session.post.call_args.args[0].endswith("/rpc/log_search_safe")
        assert params["user_ip"] == "9.9.9.9"
        assert params["was_cached"] is False
        assert params["response_source"] == "mock"

    def test_record_system_event(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.post.return_value = make_response(None)

        remote.record_system_event(SystemEvent(
            level="ERROR", component="search", action="error", message="falhou",
            metadata={"error_message": "x"},
        ))

        params = session.post.call_args.kwargs["json"]
        assert params["p_level"] == "ERROR"
        assert params["p_metadata"] == {"error_message": "x"}

    def test_search_statistics_view(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.get.return_value = make_response([
            {"substance_name": "paracetamol", "dcb_name": "Paracetamol", "search_count": 4,
             "unique_users": 2, "last_searched": "2025-06-01T10:00:00+00:00"},
        ])

        stats = remote.search_statistics(limit=5)

        assert stats[0].search_count == 4
        assert session.get.call_args.args[0].endswith("/rest/v1/search_statistics")
        assert session.get.call_args.kwargs["params"]["order"] == "search_count.desc"
        assert session.get.call_args.kwargs["params"]["limit"] == 5

    def test_recent_searches_view(self, remote: SupabaseSubstanceStore, session: MagicMock) -> None:
        session.get.return_value = make_response([
            {"id": "1", "substance_name": "paracetamol", "search_term": "Paracetamol",
             "search_timestamp": "2025-06-01T10:00:00+00:00", "user_ip": None},
        ])

        recent = remote.recent_searches()

        assert recent[0].search_term == "Paracetamol"
        assert recent[0].user_ip is None
