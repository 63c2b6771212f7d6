from __future__ import annotations

import json

import pandas as pd
import plotly.express as px
import streamlit as st

from staff_deal_tracker.api import DATE_RANGES, ReadAPI
from staff_deal_tracker.config import TrackerConfig, configure_logging
from staff_deal_tracker.models import Platform, ReviewStatus


st.set_page_config(page_title="Staff Deal Tracker", page_icon="🛍️", layout="wide")

st.title("Staff Deal Tracker")
st.caption("Employee-discount and internal-purchase posts collected from Xiaohongshu, Weibo and Douyin.")


@st.cache_resource(show_spinner=False)
def _service() -> ReadAPI:
    configure_logging()
    api = ReadAPI.from_config(TrackerConfig.load())
    api.scheduler.start(collect_now=True)
    return api


api = _service()

with st.sidebar:
    st.subheader("Platforms")
    for platform in Platform:
        enabled = api.config.source(platform).enabled
        st.write(f"- {'✅' if enabled else '❌'} {platform.display_name} (`{platform.value}`)")
    st.caption("Enable platforms via `.streamlit/secrets.toml` or env vars, e.g. `WEIBO_ENABLED=1`.")

    status = api.get_collection_status()
    for row in status["platforms"]:
        if row["last_update"]:
            st.caption(f"{row['name']}: {row['count']} posts, {row['state']} at {row['last_update']}")
    for err in status["errors"]:
        st.warning(err)

    st.divider()
    st.subheader("Manual collection")
    manual = st.selectbox("Platform", [p.value for p in api.scheduler.active_platforms()] or ["xiaohongshu"])
    if st.button("Collect now"):
        with st.spinner("Collecting..."):
            result = api.trigger_manual_collection(manual)
        (st.success if result["success"] else st.error)(result["message"])

    st.divider()
    if st.button("Refresh all data", type="primary"):
        with st.spinner("Refreshing..."):
            api.refresh_data()
        st.success("Cache cleared and data refreshed.")
    if st.button("Run validation"):
        st.write(api.validate())


summary = api.get_dashboard_summary()

c1, c2, c3, c4, c5, c6 = st.columns(6)
c1.metric("Collected", f"{summary['total']:,}")
c2.metric("Processed", f"{summary['processed']:,}")
c3.metric("Pending review", f"{summary['pending']:,}")
c4.metric("Published", f"{summary['published']:,}")
c5.metric("Avg credibility", f"{summary['avg_credibility']:.1f}")
rate = summary["accuracy_rate"]
c6.metric("Validation pass rate", f"{rate:.1f}%" if rate is not None else "n/a")
if summary["synthetic"]:
    st.warning(f"{summary['synthetic']} posts are synthetic fallback data (platform unreachable).")
st.caption(f"Active platforms: {'、'.join(summary['active_platforms']) or 'none'} · updated {summary['last_update']}")

v1, v2 = st.columns(2)
with v1:
    cats = pd.DataFrame([{"category": k, "count": v} for k, v in summary["categories"].items()])
    if cats.empty:
        st.info("No classified posts yet.")
    else:
        st.plotly_chart(px.pie(cats, names="category", values="count", title="Categories"), use_container_width=True)
with v2:
    metrics = api.get_system_metrics()
    gauges = pd.DataFrame([{"gauge": k, "value": metrics[k]} for k in ("cpu", "memory", "disk")])
    fig = px.bar(gauges, x="gauge", y="value", title="System health (%)", range_y=[0, 100])
    st.plotly_chart(fig, use_container_width=True)

st.divider()

# ---- Review queue ----
st.subheader("Review queue")
source_view = st.selectbox("Source", [p.value for p in Platform])
source = api.get_source_summary(source_view)
st.write(
    {
        "total": source["total"],
        "discount_items": source["discount_items"],
        "high_credibility": source["high_credibility"],
        "recent_items": source["recent_items"],
        "top_brands": source["top_brands"],
    }
)

queue = pd.DataFrame(api.get_review_queue(source_view))
if queue.empty:
    st.info("Nothing to review yet. Trigger a collection or wait for the next cycle.")
else:
    st.dataframe(
        queue[["id", "title", "category", "priority", "credibility", "status", "synthetic"]],
        use_container_width=True,
        height=380,
    )
    with st.form("review"):
        item_id = st.selectbox("Item", queue["id"].tolist())
        action = st.radio("Action", [s.value for s in ReviewStatus if s is not ReviewStatus.PENDING], horizontal=True)
        comment = st.text_input("Comment")
        if st.form_submit_button("Submit review"):
            res = api.submit_review(item_id, action, comment or None, source=source_view)
            (st.success if res["success"] else st.error)(res["message"])

st.divider()

# ---- Export ----
e1, e2 = st.columns(2)
fmt = e1.radio("Format", ["json", "csv"], horizontal=True)
date_range = e2.selectbox("Date range", list(DATE_RANGES), index=1)
report = api.export_report(fmt, date_range)
if report["success"]:
    data = report["content"] if fmt == "csv" else json.dumps(report["content"], ensure_ascii=False, indent=2)
    st.download_button(
        label=f"Download report ({fmt.upper()})",
        data=data.encode("utf-8"),
        file_name=f"staff_deals_{date_range}.{fmt}",
        mime="text/csv" if fmt == "csv" else "application/json",
    )
else:
    st.error(report["message"])
