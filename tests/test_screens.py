import pytest
from streamlit.testing.v1 import AppTest

from tile_tracker import views
from tile_tracker.inventory import NO_IMAGE, NOT_SPECIFIED
from tile_tracker.state import AppState, View
from tile_tracker.store import StoreError


def tile_app(table):
    from tile_tracker import views
    from tile_tracker.config import Settings

    views.render_app(Settings(admin_password="pw"), lambda: table)


def open_on(view, table):
    at = AppTest.from_function(tile_app, kwargs={"table": table}, default_timeout=30)
    at.session_state[views.STATE_KEY] = AppState(authenticated=True, view=view)
    return at.run()


def app_state(at) -> AppState:
    return at.session_state[views.STATE_KEY]


def fill_add_form(at):
    at.text_input(key="add_name").input("Granite C")
    at.text_input(key="add_size").input("18x18")
    at.text_input(key="add_sqft").input("2")
    at.text_input(key="add_boxes").input("5")
    return at


# add

def test_add_saves_and_returns_to_dashboard(table):
    at = open_on(View.ADD, table)
    fill_add_form(at).button(key="add_submit").click().run()

    assert not at.exception
    assert app_state(at).view is View.DASHBOARD
    assert at.success[0].value == "Added: Granite C (5 boxes)"
    assert len(app_state(at).tiles) == 3
    assert app_state(at).tiles[0].name == "Granite C"
    assert [m.value for m in at.metric][:2] == ["3", "18"]

    at.button(key="nav_add").click().run()
    assert at.text_input(key="add_name").value == ""
    assert at.text_input(key="add_boxes").value == ""


def test_add_store_failure_keeps_values(table):
    def fail(row):
        raise StoreError("insert failed")

    table.insert = fail
    at = open_on(View.ADD, table)
    fill_add_form(at).button(key="add_submit").click().run()

    assert not at.exception
    assert app_state(at).view is View.ADD
    assert at.error[0].value == views.WRITE_FAILED
    assert at.text_input(key="add_name").value == "Granite C"
    assert not app_state(at).loading


def test_add_unexpected_error_clears_loading(table):
    def crash(row):
        raise RuntimeError("boom")

    table.insert = crash
    at = open_on(View.ADD, table)
    fill_add_form(at).button(key="add_submit").click().run()

    assert at.exception
    assert not app_state(at).loading

    at.run()
    assert not at.button(key="add_submit").disabled


def test_add_rejects_bad_numbers_without_writing(table):
    at = open_on(View.ADD, table)
    fill_add_form(at)
    at.text_input(key="add_boxes").input("1e3")
    at.button(key="add_submit").click().run()

    assert at.error[0].value == "Number of boxes must be a whole number."
    assert len(table.rows) == 2


# remove

def test_remove_clamps_and_clears_form(table):
    at = open_on(View.REMOVE, table)
    at.selectbox(key="remove_tile").set_value(1).run()
    at.number_input(key="remove_count").set_value(5)
    at.button(key="remove_submit").click().run()

    assert not at.exception
    assert table.get(1).total_boxes == 0
    assert at.success[0].value == "Removed 5 boxes of Marble A."
    assert at.selectbox(key="remove_tile").value is None
    assert [t.total_boxes for t in app_state(at).tiles] == [10, 0]


def test_remove_conflict_warns_and_refreshes(table):
    at = open_on(View.REMOVE, table)
    at.selectbox(key="remove_tile").set_value(1).run()

    # another session writes the row after this one loaded it
    table.rows[0]["updated_at"] = "2024-06-01T00:00:00+00:00"
    at.number_input(key="remove_count").set_value(1)
    at.button(key="remove_submit").click().run()

    assert not at.exception
    assert at.warning[0].value == views.CONFLICT
    assert table.get(1).total_boxes == 3
    assert app_state(at).tiles[1].updated_at == "2024-06-01T00:00:00+00:00"
    assert not app_state(at).loading


# update

def test_update_location_only_and_clears_form(table):
    at = open_on(View.UPDATE, table)
    at.selectbox(key="update_tile").set_value(1).run()
    at.text_input(key="update_location").input("Back room")
    at.button(key="update_submit").click().run()

    assert not at.exception
    assert at.success[0].value == "Updated Marble A."
    stored = table.get(1)
    assert (stored.location, stored.total_boxes) == ("Back room", 3)
    assert at.selectbox(key="update_tile").value is None
    assert app_state(at).tiles[1].location == "Back room"


def test_update_with_blank_fields_sends_nothing(table):
    at = open_on(View.UPDATE, table)
    at.selectbox(key="update_tile").set_value(2).run()
    at.button(key="update_submit").click().run()

    assert at.info[0].value == "Nothing to update."
    assert table.updates == []


# view

def test_view_placeholders(make_table):
    table = make_table(
        [
            {"name": "Marble A", "size": "12x12", "sqft_per_box": 2.0, "total_boxes": 3, "location": "Aisle 1", "picture_url": None},
            # nothing listens on the discard port
            {"name": "Slate B", "size": "24x24", "sqft_per_box": 2.5, "total_boxes": 10, "location": None, "picture_url": "http://127.0.0.1:9/tile.png"},
        ]
    )
    at = open_on(View.VIEW, table)

    assert not at.exception
    assert [c.value for c in at.caption].count(NO_IMAGE) == 2
    markdown = [m.value for m in at.markdown]
    assert f"**Location:** {NOT_SPECIFIED}" in markdown
    assert "**Total Sq Ft:** 25.00" in markdown


@pytest.mark.parametrize("view", [View.ADD, View.REMOVE, View.UPDATE, View.VIEW])
def test_back_to_dashboard(table, view):
    at = open_on(view, table)
    back = "view_back" if view is View.VIEW else f"{view.value}_cancel"
    at.button(key=back).click().run()

    assert app_state(at).view is View.DASHBOARD
    assert at.title[0].value == "Tile Inventory Dashboard"
