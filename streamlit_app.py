# streamlit_app.py
import time
import json
import requests
import pandas as pd
import streamlit as st

# ---------- Page setup ----------
st.set_page_config(page_title="NL to SQL", layout="wide")

st.markdown("""
    <style>
    .main .block-container {padding-top: 2rem; padding-bottom: 3rem; max-width: 1200px;}
    .small-muted {color:#6b7280; font-size:13px;}
    .section-title {font-weight:600; font-size: 18px; margin-top: 1rem;}
    .hr {border-top:1px solid #e5e7eb; margin: 20px 0;}
    </style>
""", unsafe_allow_html=True)


def call_api(api: str, method: str, path: str, payload: dict | None = None):
    """Returns (ok, body, elapsed_ms). body is the JSON reply or an error string."""
    t0 = time.perf_counter()
    url = api.rstrip("/") + "/api/sql" + path
    try:
        r = requests.request(method, url, json=payload, timeout=300)
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        try:
            body = r.json()
        except ValueError:
            body = r.text
        return r.status_code == 200, body, elapsed_ms
    except requests.exceptions.RequestException as e:
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        return False, str(e), elapsed_ms


def to_frame(result: dict) -> pd.DataFrame:
    cols = result.get("columns", [])
    rows = result.get("data", [])
    return pd.DataFrame(rows, columns=cols) if rows else pd.DataFrame(columns=cols)


# ---------- Sidebar ----------
with st.sidebar:
    st.header("Settings")
    api_url = st.text_input("API base URL", value="http://127.0.0.1:8000")
    show_sql = st.checkbox("Show generated SQL", value=True)
    enable_csv = st.checkbox("Enable CSV download", value=True)
    st.markdown("<div class='small-muted'>The API should be running via <code>uvicorn app.main:app</code>.</div>", unsafe_allow_html=True)

    st.header("Service")
    if st.button("Check health"):
        ok, body, _ = call_api(api_url, "GET", "/health")
        if ok:
            st.write(f"Status: **{body['status']}**")
            st.write(f"Database: {'up' if body['database_connection'] else 'down'}")
            st.write(f"AI service: {'up' if body['ai_service_connection'] else 'down'}")
        else:
            st.error(str(body))
    if st.button("List tables"):
        ok, body, _ = call_api(api_url, "GET", "/tables")
        if ok:
            st.code("\n".join(body.get("tables", [])) or "(none)")
        else:
            st.error(str(body))

# ---------- Session state ----------
if "history" not in st.session_state:
    st.session_state.history = []  # {question, sql, previous_sql, df, ms, ok, error}
if "explanation" not in st.session_state:
    st.session_state.explanation = None

# ---------- Header ----------
st.title("Natural Language to SQL")
st.markdown("<div class='small-muted'>Ask a question in English. The service generates read-only SQL, validates it, and runs it on PostgreSQL.</div>", unsafe_allow_html=True)


def record(question: str, ok: bool, body, ms: int):
    entry = {"question": question, "ms": ms, "ok": ok, "sql": "", "previous_sql": None,
             "df": pd.DataFrame(), "error": None}
    if ok:
        entry["sql"] = body.get("generatedSql", "")
        entry["previous_sql"] = body.get("previousSql")
        entry["df"] = to_frame(body.get("executionResult", {}))
    else:
        entry["error"] = body
    st.session_state.history.insert(0, entry)
    st.session_state.explanation = None


# ---------- Ask ----------
col_q, col_btn = st.columns([4, 1])
with col_q:
    question = st.text_input("Question", value="", placeholder="e.g., Show total orders per city")
with col_btn:
    run_clicked = st.button("Run", type="primary", use_container_width=True)

if run_clicked and question.strip():
    with st.spinner("Working…"):
        ok, body, ms = call_api(api_url, "POST", "/generate", {"query": question.strip()})
    record(question, ok, body, ms)

latest = st.session_state.history[0] if st.session_state.history else None

# ---------- Refine / explain the latest SQL ----------
if latest and latest["ok"]:
    col_r, col_rb, col_eb = st.columns([3, 1, 1])
    with col_r:
        refinement = st.text_input("Refine the last query", value="", placeholder="e.g., only cities with more than 10 orders")
    with col_rb:
        refine_clicked = st.button("Refine", use_container_width=True)
    with col_eb:
        explain_clicked = st.button("Explain", use_container_width=True)

    if refine_clicked and refinement.strip():
        with st.spinner("Refining…"):
            ok, body, ms = call_api(api_url, "POST", "/refine",
                                    {"originalSql": latest["sql"], "refinementRequest": refinement.strip()})
        record(refinement, ok, body, ms)
        latest = st.session_state.history[0]

    if explain_clicked:
        with st.spinner("Explaining…"):
            ok, body, _ = call_api(api_url, "POST", "/explain", {"sql": latest["sql"]})
        st.session_state.explanation = body.get("explanation") if ok else body

# ---------- Latest result ----------
if latest:
    st.subheader("Result")
    st.markdown(f"<div class='small-muted'>Request finished in {latest['ms']} ms</div>", unsafe_allow_html=True)

    if latest["ok"]:
        if show_sql:
            if latest["previous_sql"]:
                st.markdown("<div class='section-title'>Previous SQL</div>", unsafe_allow_html=True)
                st.code(latest["previous_sql"], language="sql")
            st.markdown("<div class='section-title'>Generated SQL</div>", unsafe_allow_html=True)
            st.code(latest["sql"], language="sql")
        if st.session_state.explanation:
            st.markdown("<div class='section-title'>Explanation</div>", unsafe_allow_html=True)
            st.write(st.session_state.explanation)
        if latest["df"].empty:
            st.info("No rows returned.")
        else:
            st.dataframe(latest["df"], use_container_width=True, height=420)
            if enable_csv:
                csv = latest["df"].to_csv(index=False).encode("utf-8")
                st.download_button("Download CSV", data=csv, file_name="result.csv", mime="text/csv")
    else:
        st.error("The request did not succeed.")
        st.markdown("<div class='section-title'>Details</div>", unsafe_allow_html=True)
        if isinstance(latest["error"], (dict, list)):
            st.code(json.dumps(latest["error"], indent=2))
        else:
            st.code(str(latest["error"]))

    st.markdown("<div class='hr'></div>", unsafe_allow_html=True)

# ---------- History ----------
st.subheader("History")
if not st.session_state.history:
    st.markdown("<div class='small-muted'>Your recent queries will appear here.</div>", unsafe_allow_html=True)
else:
    for i, item in enumerate(st.session_state.history):
        with st.expander(f"{i+1}. {item['question']}  •  {item['ms']} ms"):
            if item["ok"] and show_sql:
                st.code(item["sql"], language="sql")
            if item["ok"] and not item["df"].empty:
                st.dataframe(item["df"], use_container_width=True, height=260)
            if not item["ok"]:
                st.markdown("<div class='section-title'>Error</div>", unsafe_allow_html=True)
                if isinstance(item["error"], (dict, list)):
                    st.code(json.dumps(item["error"], indent=2))
                else:
                    st.code(str(item["error"]))
