import streamlit as st

from tile_tracker import views
from tile_tracker.config import configure_logging, load_settings
from tile_tracker.store import open_table

st.set_page_config(page_title="Tile Inventory", layout="wide")

settings = load_settings()
configure_logging(settings.log_level)


@st.cache_resource
def get_table():
    return open_table(load_settings())


views.render_app(settings, get_table)
