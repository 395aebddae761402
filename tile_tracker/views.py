import logging
from contextlib import contextmanager

import altair as alt
import requests
import streamlit as st

from tile_tracker.inventory import (
    NO_IMAGE,
    NOT_SET,
    NOT_SPECIFIED,
    ValidationError,
    add_tile,
    authenticate,
    build_update_patch,
    can_submit_add,
    format_sqft,
    inventory_stats,
    load_tiles,
    parse_removal_count,
    remove_boxes,
    sqft_by_tile,
    tiles_frame,
    update_tile,
    validate_new_tile,
)
from tile_tracker.models import find_tile
from tile_tracker.state import (
    AppState,
    LoginFailed,
    LoginSucceeded,
    Logout,
    Navigate,
    RequestFinished,
    RequestStarted,
    TilesLoaded,
    View,
    current_screen,
    reduce,
)
from tile_tracker.store import ConflictError, StoreError

logger = logging.getLogger(__name__)

STATE_KEY = "tile_app_state"
FLASH_KEY = "tile_flash"

ADD_KEYS = ["add_name", "add_size", "add_sqft", "add_boxes", "add_location", "add_picture"]
REMOVE_KEYS = ["remove_tile", "remove_count"]
UPDATE_KEYS = ["update_tile", "update_boxes", "update_location", "update_picture"]

WRITE_FAILED = "Could not save the change. Your entries are kept; try again."
CONFLICT = "This tile was changed somewhere else since it was loaded. The list has been refreshed; review and try again."
LOAD_FAILED = "Could not load tiles from the store; showing the last loaded list."


# =========================================================
# STATE
# =========================================================

def get_state() -> AppState:
    if STATE_KEY not in st.session_state:
        st.session_state[STATE_KEY] = AppState()
    return st.session_state[STATE_KEY]


def dispatch(action) -> AppState:
    st.session_state[STATE_KEY] = reduce(get_state(), action)
    return st.session_state[STATE_KEY]


@contextmanager
def request_window():
    """Mark one remote request in flight; the flag is cleared however the block exits."""
    dispatch(RequestStarted())
    try:
        yield
    finally:
        if get_state().loading:
            dispatch(RequestFinished())


def go(view: View):
    dispatch(Navigate(view))
    st.rerun()


def flash(kind: str, msg: str):
    st.session_state.setdefault(FLASH_KEY, []).append((kind, msg))


def show_flashes():
    for kind, msg in st.session_state.pop(FLASH_KEY, []):
        getattr(st, kind)(msg)


def _clear(keys):
    for k in keys:
        st.session_state.pop(k, None)


def refresh_tiles(table) -> bool:
    try:
        with request_window(), st.spinner("Loading tiles..."):
            dispatch(TilesLoaded(tuple(load_tiles(table))))
    except StoreError:
        logger.exception("Error loading tiles")
        flash("warning", LOAD_FAILED)
        return False
    return True


def _back_button(label="Back to Dashboard", key=None):
    if st.button(label, key=key, use_container_width=True):
        go(View.DASHBOARD)


def _show_errors(e: ValidationError):
    for msg in e.errors:
        st.error(msg)


# =========================================================
# HTTP (picture check)
# =========================================================

@st.cache_resource
def get_http_session():
    s = requests.Session()
    s.headers.update({"User-Agent": "Mozilla/5.0 (TileTracker; Streamlit)"})
    return s


@st.cache_data(ttl=600, show_spinner=False)
def image_reachable(url: str) -> bool:
    try:
        r = get_http_session().get(url, timeout=8, stream=True)
        r.close()
    except requests.RequestException as e:
        logger.debug("Picture %s unreachable: %s", url, e)
        return False
    return r.ok and r.headers.get("Content-Type", "").lower().startswith("image/")


# =========================================================
# LOGIN
# =========================================================

def render_login(settings):
    _, mid, _ = st.columns([1, 1.2, 1])
    with mid:
        st.title("Tile Inventory System")
        with st.form("login_form"):
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Login", type="primary", use_container_width=True)

        if submitted:
            if authenticate(password, settings.admin_password):
                dispatch(LoginSucceeded())
                st.rerun()
            dispatch(LoginFailed())

        error = get_state().login_error
        if error:
            st.error(error)


# =========================================================
# DASHBOARD
# =========================================================

def render_dashboard(state, table):
    top_left, top_right = st.columns([3, 1])
    with top_left:
        st.title("Tile Inventory Dashboard")
    with top_right:
        if st.button("🔄 Refresh", key="dashboard_refresh", use_container_width=True, disabled=state.loading):
            if refresh_tiles(table):
                flash("success", "Reloaded tiles.")
            st.rerun()
        if st.button("Logout", key="dashboard_logout", type="primary", use_container_width=True):
            dispatch(Logout())
            st.rerun()

    nav = [
        ("➕ Add New Tiles", "Add new tile inventory", View.ADD),
        ("➖ Remove Tiles", "Remove tiles when sold", View.REMOVE),
        ("✏️ Update Inventory", "Update existing tiles", View.UPDATE),
        ("👁️ View Tiles", "View all tile inventory", View.VIEW),
    ]
    for col, (title, desc, view) in zip(st.columns(4), nav):
        with col:
            if st.button(title, help=desc, key=f"nav_{view.value}", use_container_width=True):
                go(view)
            st.caption(desc)

    st.markdown("---")
    st.subheader("Quick Stats")
    stats = inventory_stats(state.tiles)
    k1, k2, k3 = st.columns(3)
    k1.metric("Total Tile Types", str(stats["tile_types"]))
    k2.metric("Total Boxes", str(stats["total_boxes"]))
    k3.metric("Total Sq Ft", format_sqft(stats["total_sqft"], 0))

    if state.tiles:
        chart_df = sqft_by_tile(state.tiles)
        chart = alt.Chart(chart_df).mark_bar().encode(
            x=alt.X("total_sqft:Q", title="Sq Ft on hand"),
            y=alt.Y("tile:N", sort="-x", title=""),
            tooltip=[
                alt.Tooltip("tile:N", title="Tile"),
                alt.Tooltip("total_sqft:Q", title="Sq Ft", format=",.2f"),
            ],
        )
        st.altair_chart(chart, use_container_width=True)


# =========================================================
# ADD
# =========================================================

def render_add(state, table):
    st.title("Add New Tiles")

    c1, c2 = st.columns(2)
    with c1:
        name = st.text_input("Tile name*", key="add_name", placeholder="Marble A")
        sqft = st.text_input("Sq ft per box*", key="add_sqft", placeholder="e.g. 10.76")
        location = st.text_input("Location", key="add_location", placeholder="Aisle 3, Rack B")
    with c2:
        size = st.text_input("Size*", key="add_size", placeholder="e.g. 12x12 inch")
        boxes = st.text_input("Number of boxes*", key="add_boxes", placeholder="e.g. 40")
        picture = st.text_input("Picture URL (optional)", key="add_picture", placeholder="https://...")

    b1, b2 = st.columns(2)
    with b1:
        submit = st.button(
            "Add Tiles",
            key="add_submit",
            type="primary",
            use_container_width=True,
            disabled=state.loading or not can_submit_add(name, size, sqft, boxes),
        )
    with b2:
        _back_button("Cancel", key="add_cancel")

    if not submit:
        return

    try:
        row = validate_new_tile(name, size, sqft, boxes, location, picture)
    except ValidationError as e:
        _show_errors(e)
        return

    try:
        with request_window(), st.spinner("Adding..."):
            add_tile(table, row)
    except StoreError:
        logger.exception("Error adding tile")
        st.error(WRITE_FAILED)
        return

    refresh_tiles(table)
    _clear(ADD_KEYS)
    flash("success", f"Added: {row['name']} ({row['total_boxes']} boxes)")
    go(View.DASHBOARD)


# =========================================================
# REMOVE
# =========================================================

def render_remove(state, table):
    st.title("Remove Tiles")

    tiles = state.tiles
    by_id = {t.id: t for t in tiles}
    tile_id = st.selectbox(
        "Tile",
        options=list(by_id),
        index=None,
        format_func=lambda i: by_id[i].label(),
        placeholder="Select a tile to remove",
        key="remove_tile",
    )
    tile = find_tile(tiles, tile_id)

    count = None
    if tile is not None:
        count = st.number_input(
            "Number of boxes to remove",
            min_value=1,
            value=None,
            step=1,
            key="remove_count",
            help=f"{tile.total_boxes} boxes available",
        )
        if count is not None and count > tile.total_boxes:
            st.caption(f"Only {tile.total_boxes} boxes in stock; the count will be set to 0.")

    b1, b2 = st.columns(2)
    with b1:
        submit = st.button(
            "Remove Tiles",
            key="remove_submit",
            type="primary",
            use_container_width=True,
            disabled=state.loading or tile is None or count is None,
        )
    with b2:
        _back_button("Cancel", key="remove_cancel")

    if not submit:
        return

    try:
        n = parse_removal_count(count)
    except ValidationError as e:
        _show_errors(e)
        return

    try:
        with request_window(), st.spinner("Removing..."):
            remove_boxes(table, tile, n)
    except ConflictError:
        logger.warning("Conflict removing boxes from tile %s", tile.id, exc_info=True)
        refresh_tiles(table)
        flash("warning", CONFLICT)
        st.rerun()
    except StoreError:
        logger.exception("Error removing tiles")
        st.error(WRITE_FAILED)
        return

    refresh_tiles(table)
    _clear(REMOVE_KEYS)
    flash("success", f"Removed {n} boxes of {tile.name}.")
    st.rerun()


# =========================================================
# UPDATE
# =========================================================

def render_update(state, table):
    st.title("Update Tile Inventory")

    tiles = state.tiles
    by_id = {t.id: t for t in tiles}
    tile_id = st.selectbox(
        "Tile",
        options=list(by_id),
        index=None,
        format_func=lambda i: f"{by_id[i].name} - {by_id[i].size}",
        placeholder="Select a tile to update",
        key="update_tile",
    )
    tile = find_tile(tiles, tile_id)

    new_boxes = new_location = new_picture = None
    if tile is not None:
        with st.container(border=True):
            st.markdown(f"**{tile.name}**")
            st.write(f"Boxes: {tile.total_boxes}")
            st.write(f"Location: {tile.location or NOT_SET}")

        new_boxes = st.number_input(
            "New box count (leave blank to keep current)",
            min_value=0,
            value=None,
            step=1,
            key="update_boxes",
        )
        new_location = st.text_input("New location (leave blank to keep current)", key="update_location")
        new_picture = st.text_input("New picture URL (leave blank to keep current)", key="update_picture")

    b1, b2 = st.columns(2)
    with b1:
        submit = st.button(
            "Update Tile",
            key="update_submit",
            type="primary",
            use_container_width=True,
            disabled=state.loading or tile is None,
        )
    with b2:
        _back_button("Cancel", key="update_cancel")

    if not submit:
        return

    try:
        patch = build_update_patch(new_boxes, new_location, new_picture)
    except ValidationError as e:
        _show_errors(e)
        return

    if not patch:
        st.info("Nothing to update.")
        return

    try:
        with request_window(), st.spinner("Updating..."):
            update_tile(table, tile, patch)
    except ConflictError:
        logger.warning("Conflict updating tile %s", tile.id, exc_info=True)
        refresh_tiles(table)
        flash("warning", CONFLICT)
        st.rerun()
    except StoreError:
        logger.exception("Error updating tile")
        st.error(WRITE_FAILED)
        return

    refresh_tiles(table)
    _clear(UPDATE_KEYS)
    flash("success", f"Updated {tile.name}.")
    st.rerun()


# =========================================================
# VIEW
# =========================================================

def _render_picture(tile):
    if tile.picture_url and image_reachable(tile.picture_url):
        st.image(tile.picture_url, width=160)
    else:
        st.caption(NO_IMAGE)


def render_view(state):
    top_left, top_right = st.columns([3, 1])
    with top_left:
        st.title("View All Tiles")

    tiles = state.tiles
    if state.loading:
        st.info("Loading tiles...")
    elif not tiles:
        st.info("No tiles found. Add some tiles to get started!")
    else:
        with top_right:
            csv = tiles_frame(tiles).to_csv(index=False).encode("utf-8")
            st.download_button(
                "Download CSV",
                data=csv,
                file_name="tile_inventory.csv",
                mime="text/csv",
                use_container_width=True,
            )

        st.caption(f"{len(tiles)} tile type(s)")
        for tile in tiles:
            with st.container(border=True):
                info, pic = st.columns([4, 1])
                with info:
                    st.markdown(f"#### {tile.name}")
                    a, b, c = st.columns(3)
                    a.write(f"**Size:** {tile.size}")
                    a.write(f"**Sq Ft per Box:** {tile.sqft_per_box:g}")
                    b.write(f"**Total Boxes:** {tile.total_boxes}")
                    b.write(f"**Total Sq Ft:** {format_sqft(tile.total_sqft)}")
                    c.write(f"**Location:** {tile.location or NOT_SPECIFIED}")
                with pic:
                    _render_picture(tile)

    _back_button(key="view_back")


# =========================================================
# ROUTER
# =========================================================

def render_app(settings, get_table):
    """Render the screen for the current session; ``get_table`` is only called once logged in."""
    state = get_state()
    screen = current_screen(state)

    if screen is View.LOGIN:
        render_login(settings)
        return

    try:
        table = get_table()
    except Exception as e:
        logger.exception("Failed to open tile table")
        st.error(f"Failed to connect to the tile table: {e}")
        if st.button("Logout", key="connect_logout"):
            dispatch(Logout())
            st.rerun()
        return

    if not state.loaded:
        refresh_tiles(table)
        state = get_state()

    show_flashes()

    if screen is View.DASHBOARD:
        render_dashboard(state, table)
    elif screen is View.ADD:
        render_add(state, table)
    elif screen is View.REMOVE:
        render_remove(state, table)
    elif screen is View.UPDATE:
        render_update(state, table)
    elif screen is View.VIEW:
        render_view(state)
