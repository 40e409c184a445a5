"""
Streamlit UI -- Sales Analyst Copilot.

Features:
  - Persistent chat history (session state), sent whole to /api/finance
  - Sidebar with live table catalog and model picker
  - File upload (text files and images) attached to the next question
  - Chart rendering from the returned ChartSpec (latest chart replaces the previous one)
  - Results table with named formatters and CSV download
"""
import base64

import httpx
import pandas as pd
import streamlit as st

from sales_copilot.copilot.chart_spec import format_value

API_BASE = "http://localhost:8000"
_TIMEOUT = 60

MODELS = [
    "claude-3-haiku-20240307",
    "claude-3-5-sonnet-20241022",
    "gpt-4o-mini",
]

st.set_page_config(
    page_title="Sales Analyst Copilot",
    page_icon="bar_chart",
    layout="wide",
    initial_sidebar_state="expanded",
)


if "messages" not in st.session_state:
    st.session_state.messages = []

if "catalog" not in st.session_state:
    st.session_state.catalog = None

if "chart" not in st.session_state:
    st.session_state.chart = None


def _load_catalog():
    """Fetch /catalog from the API; cache in session_state."""
    try:
        st.session_state.catalog = httpx.get(f"{API_BASE}/catalog", timeout=5).json()
    except httpx.HTTPError:
        st.session_state.catalog = None


with st.sidebar:
    st.title("Catalog")

    if st.button("Refresh catalog", use_container_width=True):
        _load_catalog()

    if st.session_state.catalog is None:
        _load_catalog()

    catalog = st.session_state.catalog
    if catalog:
        for table in catalog.get("tables", []):
            with st.expander(f"{table['name']}", expanded=False):
                st.caption(table.get("description", ""))
                for col in table.get("columns", []):
                    st.markdown(f"- **{col['name']}** `{col['type']}`")
    else:
        st.info(
            "API not reachable -- start the FastAPI server first.\n\n"
            "```\nuvicorn sales_copilot.api.main:app --reload\n```"
        )

    st.divider()
    st.subheader("Model")
    model = st.selectbox("Chat model", MODELS, index=0)

    st.divider()
    st.subheader("Attach a file")
    upload = st.file_uploader(
        "Text file or image",
        type=["txt", "csv", "json", "md", "png", "jpg", "jpeg", "gif", "webp"],
    )

    if st.button("Clear conversation", use_container_width=True):
        st.session_state.messages = []
        st.session_state.chart = None
        st.rerun()

    st.divider()
    st.caption("Sales Analyst Copilot v0.1")


st.title("Sales Analyst Copilot")
st.markdown("Ask about sales, products, materials or vehicles in plain English.")

with st.expander("Example questions", expanded=False):
    examples = [
        "Show me total sales by product",
        "Show me revenue trend by month",
        "Top 5 countries by sales",
        "Average material cost per product type",
        "Sales by quarter this year",
        "How many orders in Queensland last month?",
    ]
    cols = st.columns(2)
    for i, ex in enumerate(examples):
        if cols[i % 2].button(ex, key=f"ex_{i}", use_container_width=True):
            st.session_state.prefill = ex


def _file_payload(uploaded) -> dict | None:
    if uploaded is None:
        return None
    media_type = uploaded.type or "application/octet-stream"
    return {
        "base64": base64.b64encode(uploaded.getvalue()).decode("ascii"),
        "mediaType": media_type,
        "isText": media_type.startswith("text/") or media_type == "application/json",
        "fileName": uploaded.name,
    }


def _series_keys(chart: dict) -> list[str]:
    return [s["dataKey"] for s in chart.get("chartConfig", {}).values() if s.get("dataKey")]


def _render_chart(chart: dict):
    """Render a normalized ChartSpec with Streamlit native charts."""
    config = chart.get("config", {})
    df = pd.DataFrame(chart.get("data", []))
    x = config.get("xAxisKey")
    keys = [k for k in _series_keys(chart) if k in df.columns]
    if df.empty or x not in df.columns or not keys:
        return

    st.subheader(config.get("title", ""))
    if config.get("subtitle"):
        st.caption(config["subtitle"])

    frame = df.set_index(x)[keys]
    chart_type = chart.get("chartType", "bar")
    if chart_type == "line":
        st.line_chart(frame)
    elif chart_type == "area":
        st.area_chart(frame, stack=False)
    elif chart_type == "stackedArea":
        st.area_chart(frame)
    elif chart_type == "multiBar":
        st.bar_chart(frame, stack=bool(config.get("stacked")))
    elif chart_type == "pie":
        # Streamlit has no native pie chart
        st.bar_chart(frame)
        st.caption("(Pie chart shown as bar)")
    else:
        st.bar_chart(frame)

    if config.get("footer"):
        st.caption(config["footer"])


def _render_table(chart: dict):
    config = chart.get("config", {})
    rows = chart.get("data", [])
    if not rows:
        return
    df = pd.DataFrame(rows)
    formatter = config.get("tooltipFormatter") or config.get("yAxisFormatter")
    display = df.copy()
    if formatter:
        for key in _series_keys(chart):
            if key in display.columns:
                display[key] = display[key].map(lambda v: format_value(v, formatter))
    st.dataframe(display, use_container_width=True)
    st.download_button(
        "Download CSV",
        df.to_csv(index=False),
        file_name="sales_copilot_results.csv",
        mime="text/csv",
        key=f"csv_{id(chart)}",
    )


def _render_response(data: dict, show_chart: bool = True):
    st.markdown(data.get("content", ""))
    chart = data.get("chartData")
    if chart and show_chart:
        _render_chart(chart)
        with st.expander("Data", expanded=False):
            _render_table(chart)


for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        if msg["role"] == "assistant" and "data" in msg:
            # only the most recent chart is kept on screen
            _render_response(msg["data"], show_chart=msg["data"].get("chartData") is st.session_state.chart)
        else:
            st.markdown(msg["content"])


prefill = st.session_state.pop("prefill", None)
question = st.chat_input("Ask a sales question...") or prefill

if question:
    st.session_state.messages.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    history = [{"role": m["role"], "content": m["content"]} for m in st.session_state.messages]

    with st.chat_message("assistant"):
        with st.spinner("Analyzing..."):
            try:
                payload = {"messages": history, "model": model}
                file_data = _file_payload(upload)
                if file_data:
                    payload["fileData"] = file_data
                resp = httpx.post(f"{API_BASE}/api/finance", json=payload, timeout=_TIMEOUT)
                resp.raise_for_status()
                data = resp.json()
            except httpx.ConnectError:
                st.error(
                    "Cannot reach the API. Start it with:\n"
                    "```\nuvicorn sales_copilot.api.main:app --reload\n```"
                )
                st.stop()
            except httpx.HTTPStatusError as exc:
                try:
                    detail = exc.response.json().get("error", exc.response.text)
                except ValueError:
                    detail = exc.response.text
                st.error(f"API returned {exc.response.status_code}: {detail}")
                st.stop()

        _render_response(data)
        if data.get("replaceChart") and data.get("chartData"):
            st.session_state.chart = data["chartData"]
        st.session_state.messages.append(
            {"role": "assistant", "content": data.get("content", ""), "data": data}
        )
