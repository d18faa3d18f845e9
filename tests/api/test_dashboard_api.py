from fastapi.testclient import TestClient

import api_server
from leadgraph.graph.dashboard_service import LeadDashboardService
from leadgraph.graph.service import GraphQueryError

MARCH_15 = 1710498600000


class FakeGraphService:
    def __init__(self, *, available: bool = True, rules=None):
        self._available = available
        self._rules = list(rules or [])
        self.calls = []

    def is_available(self) -> bool:
        return self._available

    def run_query(self, query, params=None):
        self.calls.append((query, params or {}))
        for marker, rows in self._rules:
            if marker in query:
                if isinstance(rows, Exception):
                    raise rows
                return rows
        return []


def make_client(monkeypatch, graph):
    service = LeadDashboardService(config={}, graph_service=graph)
    monkeypatch.setattr(api_server, "graph_dashboard_service", service)
    return TestClient(api_server.app, raise_server_exceptions=False)


def test_health(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService(available=False))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["graph_available"] is False


def test_leads_unavailable_returns_503(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService(available=False))
    assert client.get("/api/leads").status_code == 503


def test_leads_listing_passes_filters(monkeypatch):
    graph = FakeGraphService(
        rules=[
            ("count(DISTINCT l)", [{"total": 1}]),
            ("AS lead", [{"lead": {"idWhatsapp": "5511", "nome": "Ana", "tags": [], "pains": ["Preço alto"]}}]),
        ]
    )
    client = make_client(monkeypatch, graph)

    response = client.get(
        "/api/leads",
        params={"nome": "an", "dor": "Preço alto", "dtCriacaoStart": "2024-03-15", "page": 1, "limit": 5},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["totalItems"] == 1
    assert payload["data"][0]["name"] == "Ana"
    assert payload["data"][0]["pains"] == ["Preço alto"]
    params = graph.calls[1][1]
    assert params["textMatch"] == "an"
    assert params["pain"] == "Preço alto"
    assert params["dtCriacaoStartMillis"] == 1710460800000
    assert params["limit"] == 5


def test_leads_invalid_page_returns_400(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService())
    assert client.get("/api/leads", params={"page": 0}).status_code == 400


def test_leads_invalid_date_returns_400(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService())
    assert client.get("/api/leads", params={"dtCriacaoStart": "ontem"}).status_code == 400


def test_lead_detail_404(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService())
    assert client.get("/api/leads/5511").status_code == 404


def test_lead_detail(monkeypatch):
    graph = FakeGraphService(rules=[("AS lead", [{"lead": {"id": "5511", "dtCriacao": MARCH_15}}])])
    client = make_client(monkeypatch, graph)
    response = client.get("/api/leads/5511")
    assert response.status_code == 200
    assert response.json() == {
        "id": "5511",
        "dtCriacao": "2024-03-15T10:30:00.000Z",
        "lastLatentInterpretations": [],
    }


def test_interaction_events(monkeypatch):
    graph = FakeGraphService(rules=[("HAD_EVENT", [{"type": "message", "timestamp": MARCH_15}])])
    client = make_client(monkeypatch, graph)
    response = client.get("/api/leads/5511/interaction-events")
    assert response.json() == [{"type": "message", "timestamp": "2024-03-15T10:30:00.000Z"}]


def test_graph_overview(monkeypatch):
    row = {
        "node1": {"identity": "4:db:1", "labels": ["Lead"], "properties": {"nome": "Ana"}},
        "relationship": None,
        "node2": None,
    }
    graph = FakeGraphService(rules=[("node1", [row])])
    client = make_client(monkeypatch, graph)

    response = client.get("/api/graph/overview-formatted", params={"nodeLimit": 10})

    assert response.status_code == 200
    assert response.json()["nodes"][0]["label"] == "Ana"
    assert graph.calls[0][1] == {"limit": 10}


def test_graph_overview_without_apoc_returns_501(monkeypatch):
    error = GraphQueryError("Unknown function 'apoc.path.subgraphAll'")
    client = make_client(monkeypatch, FakeGraphService(rules=[("apoc", error)]))
    response = client.get("/api/graph/overview-formatted", params={"leadId": "5511"})
    assert response.status_code == 501


def test_query_failure_returns_500(monkeypatch):
    error = GraphQueryError("connection reset")
    client = make_client(monkeypatch, FakeGraphService(rules=[("count", error)]))
    assert client.get("/api/knowledgebase/stats").status_code == 500


def test_knowledgebase_unknown_type_returns_400(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService())
    assert client.get("/api/knowledgebase/items/Lead").status_code == 400


def test_knowledgebase_items(monkeypatch):
    graph = FakeGraphService(
        rules=[("count(DISTINCT n)", [{"total": 2}]), ("AS item", [{"item": {"id": "4:db:3", "name": "Preço alto"}}])]
    )
    client = make_client(monkeypatch, graph)
    response = client.get("/api/knowledgebase/items/DorComum", params={"limit": 1})
    payload = response.json()
    assert payload["totalPages"] == 2
    assert payload["data"] == [{"id": "4:db:3", "name": "Preço alto"}]


def test_period_stats(monkeypatch):
    graph = FakeGraphService(rules=[("count(DISTINCT l)", [{"total": 7}])])
    client = make_client(monkeypatch, graph)
    response = client.get("/api/stats/geral-periodo", params={"startDate": "2024-03-01"})
    payload = response.json()
    assert payload["periodo"] == {"inicio": "2024-03-01", "fim": "Agora"}
    assert payload["leadsAdicionadosNoPeriodo"] == 7


def test_period_stats_inverted_range_returns_400(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService())
    response = client.get("/api/stats/geral-periodo", params={"startDate": "2024-04-01", "endDate": "2024-03-01"})
    assert response.status_code == 400


def test_zero_limits_return_400(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService())
    assert client.get("/api/knowledgebase/items/DorComum", params={"limit": 0}).status_code == 400
    assert client.get("/api/graph/overview-formatted", params={"nodeLimit": 0}).status_code == 400


def test_chat_history(monkeypatch):
    rows = [{"role": "user", "text": "Oi", "timestamp": MARCH_15}]
    client = make_client(monkeypatch, FakeGraphService(rules=[("INTERACTED_WITH", rows)]))
    response = client.get("/api/leads/5511/chathistory")
    assert response.status_code == 200
    assert response.json() == [
        {"role": "user", "parts": [{"text": "Oi"}], "timestamp": "2024-03-15T10:30:00.000Z", "messageType": "text"}
    ]


def test_lead_history_routes(monkeypatch):
    graph = FakeGraphService(
        rules=[
            ("HAS_PLANNER_HISTORY", [{"historyEvent": {"planName": "qualificacao"}}]),
            ("HAS_REFLECTION", [{"reflection": {"summary": "ok"}}]),
            ("GENERATED_HYPOTHESIS", [{"hypothesis": {"interpretation": "x"}}]),
        ]
    )
    client = make_client(monkeypatch, graph)
    assert client.get("/api/leads/5511/planner-history").json() == [{"planName": "qualificacao"}]
    assert client.get("/api/leads/5511/all-reflections").json() == [{"summary": "ok"}]
    assert client.get("/api/leads/5511/all-hypotheses").json() == [{"interpretation": "x"}]


def test_lead_history_unavailable_returns_503(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService(available=False))
    assert client.get("/api/leads/5511/chathistory").status_code == 503


def test_general_stats(monkeypatch):
    client = make_client(monkeypatch, FakeGraphService(rules=[("count(DISTINCT l)", [{"total": 9}])]))
    response = client.get("/api/stats/geral")
    assert response.status_code == 200
    assert response.json() == {
        "totalLeads": 9,
        "totalConvertidos": 9,
        "leadsAdicionadosHoje": 9,
        "leadsConvertidosHoje": 9,
    }


def test_pain_and_interest_stats(monkeypatch):
    graph = FakeGraphService(
        rules=[
            ("TEM_DOR", [{"dor": "Preço alto", "qtd": 3}]),
            ("nivelDeInteresseReuniao AS nivel", [{"nivel": None, "qtd": 1}]),
        ]
    )
    client = make_client(monkeypatch, graph)
    assert client.get("/api/stats/dores").json() == [{"nome": "Preço alto", "quantidade": 3}]
    assert client.get("/api/stats/niveis-interesse").json() == [{"nivel": "N/A", "quantidade": 1}]
