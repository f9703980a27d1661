# Streamlit dashboard: reads the manipulator, real-world changes and in-game stocks
# from the document store (read-only).
import os

import plotly.graph_objects as go
import streamlit as st

from market_pipeline.config import Settings
from market_pipeline.document_store import DocumentStore
from market_pipeline.in_game_market import load_market_snapshot


@st.cache_resource
def _store():
    settings = Settings.from_env()
    return settings, DocumentStore.from_settings(settings, os.getenv("STORE_KEY"))


st.set_page_config(page_title="In-Game Market", layout="wide")
st.title("In-Game Market")

settings, store = _store()
snap = load_market_snapshot(store, settings)

manip = snap["manipulator"]
if manip:
    st.subheader(f"Manipulator: {manip.get('manipulator')}%  ({manip.get('tier', '?')})")
    st.caption(f"Average real-world change {manip.get('average_change')}% "
               f"over {manip.get('documents_used')} quotes, updated {manip.get('update_time')}")
else:
    st.subheader("No manipulator stored yet")

changes = snap["changes"]
if not changes.empty:
    colors = ["#2e7d32" if v >= 0 else "#c62828" for v in changes.values]
    fig = go.Figure(go.Bar(x=list(changes.index), y=changes.values, marker_color=colors, name="Change %"))
    fig.update_layout(margin=dict(l=10, r=10, b=10, t=30), yaxis_title="Change %")
    st.plotly_chart(fig, use_container_width=True)

st.dataframe(snap["stocks"], use_container_width=True)
