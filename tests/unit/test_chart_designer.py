"""
Unit tests -- chart re-design pass (LLM stubbed) and its rule-based fallback.
"""
import asyncio
import json

from sales_copilot.copilot import llm_client
from sales_copilot.copilot.chart_designer import default_design, redesign_chart, summarize_data
from sales_copilot.copilot.llm_client import ContentBlock, LLMResponse

CHART = {
    "chartType": "bar",
    "data": [
        {"city": "Perth", "quantity": 10, "unit_price": 2.5},
        {"city": "Sydney", "quantity": 30, "unit_price": 3.5},
    ],
    "config": {},
    "chartConfig": {},
}


def _stub_llm(monkeypatch, text=None, exc=None):
    async def fake_complete(**kwargs):
        if exc is not None:
            raise exc
        return LLMResponse(content=[ContentBlock(type="text", text=text)], model="stub")

    monkeypatch.setattr(llm_client, "complete", fake_complete)


def test_summarize_data():
    summary = summarize_data(CHART["data"])
    assert summary["rowCount"] == 2
    assert summary["columns"]["city"] == {"type": "string", "distinct": 2}
    assert summary["columns"]["quantity"] == {"type": "number", "min": 10, "max": 30, "avg": 20.0}


def test_default_design_uses_roles():
    design = default_design(CHART)
    assert design["config"]["xAxisKey"] == "city"
    assert [s["dataKey"] for s in design["chartConfig"].values()] == ["quantity", "unit_price"]
    assert design["data"] == CHART["data"]
    assert design["config"]["title"] == "Quantity, Unit Price by City"


def test_default_design_pie():
    pie = {"chartType": "pie", "data": [{"segment": "A", "value": 1}, {"segment": "B", "value": 2}]}
    design = default_design(pie)
    assert design["config"]["xAxisKey"] == "segment"
    assert [s["name"] for s in design["chartConfig"].values()] == ["A", "B"]


def test_redesign_applies_llm_config(monkeypatch):
    reply = {
        "config": {"xAxisKey": "city", "title": "Units by City", "yAxisFormatter": "integer"},
        "chartConfig": {"units": {"dataKey": "quantity", "name": "Units", "color": "#123456"}},
    }
    _stub_llm(monkeypatch, text="```json\n" + json.dumps(reply) + "\n```")
    result = asyncio.run(redesign_chart(CHART, "units per city"))
    assert result["config"]["title"] == "Units by City"
    assert result["chartConfig"] == reply["chartConfig"]
    assert result["data"] == CHART["data"]
    assert result["chartType"] == "bar"


def test_redesign_falls_back_on_bad_json(monkeypatch):
    _stub_llm(monkeypatch, text="I think a bar chart is best")
    result = asyncio.run(redesign_chart(CHART))
    assert result == default_design(CHART)


def test_redesign_falls_back_on_unknown_keys(monkeypatch):
    reply = {"config": {"xAxisKey": "region"}, "chartConfig": {"r": {"dataKey": "revenue"}}}
    _stub_llm(monkeypatch, text=json.dumps(reply))
    result = asyncio.run(redesign_chart(CHART))
    assert result["config"]["xAxisKey"] == "city"


def test_redesign_falls_back_on_provider_error(monkeypatch):
    _stub_llm(monkeypatch, exc=RuntimeError("provider down"))
    result = asyncio.run(redesign_chart(CHART))
    assert result["data"] == CHART["data"]
    assert result["chartConfig"]


# ── Malformed designs and rows ───────────────────────────────

def test_redesign_falls_back_on_list_x_axis(monkeypatch):
    reply = {"config": {"xAxisKey": ["city"]}, "chartConfig": {"q": {"dataKey": "quantity"}}}
    _stub_llm(monkeypatch, text=json.dumps(reply))
    result = asyncio.run(redesign_chart(CHART))
    assert result == default_design(CHART)


def test_redesign_falls_back_on_list_data_key(monkeypatch):
    reply = {"config": {"xAxisKey": "city"}, "chartConfig": {"q": {"dataKey": ["quantity"]}}}
    _stub_llm(monkeypatch, text=json.dumps(reply))
    result = asyncio.run(redesign_chart(CHART))
    assert result == default_design(CHART)


def test_redesign_skips_rows_that_are_not_dicts(monkeypatch):
    calls = []

    async def fake_complete(**kwargs):
        calls.append(kwargs)
        raise AssertionError("LLM should not be called")

    monkeypatch.setattr(llm_client, "complete", fake_complete)
    chart = {"chartType": "bar", "data": [{"month": "Jan", "q": 1}, None], "config": {}, "chartConfig": {}}
    result = asyncio.run(redesign_chart(chart))
    assert result == chart
    assert calls == []


def test_default_design_tolerates_none_row():
    chart = {"chartType": "bar", "data": [{"month": "Jan", "q": 1}, None]}
    assert default_design(chart) == chart


def test_summarize_data_drops_none_rows():
    summary = summarize_data([None, {"city": "Perth", "quantity": 4}, None])
    assert summary["rowCount"] == 1
    assert summary["columns"]["quantity"]["max"] == 4
