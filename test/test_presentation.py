import pytest

from core.annotations import Note
from core.change_bus import ChangeKind
from core.lifecycle import Phase
from core.presentation import (
    APP_NAME,
    PHASE_PROFILES,
    RUNTIME_TICK_MS,
    Action,
    CloseChoice,
    FileKind,
    PresentationCoordinator,
    classify_file,
    format_elapsed,
)
from shared.app_settings import AppSettingsStore, InMemoryPersistence
from test.fixtures.fakes import RecordingCollaborators


@pytest.fixture
def collaborators():
    return RecordingCollaborators()


@pytest.fixture
def coordinator(session, scheduler, collaborators):
    coordinator = PresentationCoordinator(session, scheduler=scheduler, collaborators=collaborators.build())
    yield coordinator
    coordinator.close()


def _enter_data_loaded(session, path="/data/run1.csv", dirty=False):
    session.registry.add()
    session.enter_data_loaded(path)
    if dirty:
        session.annotations.add(Note(1.0, 2.0, "spike"))


def _never_prompt():
    raise AssertionError("close prompt should not be shown")


# ---- formatting and classification ----

def test_format_elapsed():
    assert format_elapsed(3_725_000) == "1 hours, 2 minutes 5 seconds"
    assert format_elapsed(0) == "0 hours, 0 minutes 0 seconds"
    assert format_elapsed(59_999) == "0 hours, 0 minutes 59 seconds"
    assert format_elapsed(-10) == "0 hours, 0 minutes 0 seconds"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("settings.mbs", FileKind.PROJECT_SETTINGS),
        ("/home/user/Run.CSV", FileKind.DATA),
        ("C:/regs/defs.MbC", FileKind.REGISTER_DEFINITIONS),
        ("notes.unknown", None),
        ("no_extension", None),
        ("backup.csv.bak", None),
    ],
)
def test_classify_file(path, expected):
    assert classify_file(path) is expected


# ---- initial projection ----

def test_initial_projection(coordinator):
    assert coordinator.show_hide_menu.entries == ()
    assert not coordinator.show_hide_menu.enabled
    assert not coordinator.bring_to_front_menu.enabled
    assert coordinator.enabled_actions == PHASE_PROFILES[Phase.IDLE].enabled
    assert coordinator.status.state_text == "Stopped"
    assert coordinator.status.runtime_text == "Runtime: 0 hours, 0 minutes 0 seconds"
    assert coordinator.window_title == APP_NAME
    assert coordinator.context_menu_allowed


# ---- channel menus ----

def test_menus_rebuilt_from_active_channels(session, coordinator):
    a = session.registry.add(label="A")
    session.registry.add(label="B", active=False)
    c = session.registry.add(label="C")

    entries = coordinator.show_hide_menu.entries
    assert [(e.position, e.channel_id, e.label) for e in entries] == [(0, a, "A"), (1, c, "C")]
    assert all(e.checked for e in entries)
    assert coordinator.show_hide_menu.enabled
    front = coordinator.bring_to_front_menu.entries
    assert [e.checked for e in front] == [True, False]


def test_menus_disabled_when_no_active_channel(session, coordinator):
    channel_id = session.registry.add()
    assert coordinator.show_hide_menu.enabled
    session.registry.set_active(channel_id, False)
    assert coordinator.show_hide_menu.entries == ()
    assert not coordinator.show_hide_menu.enabled
    assert not coordinator.bring_to_front_menu.enabled


def test_show_hide_toggle_calls_back_into_registry(session, coordinator, recorder):
    session.registry.add()
    b = session.registry.add()
    recorder.clear()

    coordinator.show_hide_menu.entries[1].toggle(False)

    assert not session.registry.is_visible(b)
    assert not coordinator.show_hide_menu.entries[1].checked
    assert not coordinator.bring_to_front_menu.entries[1].visible
    assert coordinator.bring_to_front_menu.enabled
    assert recorder.kinds() == [ChangeKind.CHANNEL_VISIBILITY, ChangeKind.MENUS]


def test_bring_to_front_disabled_when_all_hidden(session, coordinator):
    a = session.registry.add()
    session.registry.set_visible(a, False)
    assert coordinator.show_hide_menu.enabled
    assert not coordinator.bring_to_front_menu.enabled


def test_bring_to_front_toggle_sets_front_channel(session, coordinator):
    session.registry.add()
    session.registry.add()

    coordinator.bring_to_front_menu.entries[1].toggle(True)

    assert session.lifecycle.front_channel == 1
    assert [e.checked for e in coordinator.bring_to_front_menu.entries] == [False, True]
    # Unchecking is the exclusive group's echo; it does not move the front channel
    coordinator.bring_to_front_menu.entries[1].toggle(False)
    assert session.lifecycle.front_channel == 1


@pytest.mark.parametrize("shrink", ["remove", "deactivate"])
def test_front_channel_follows_a_shrinking_active_set(session, coordinator, shrink):
    ids = [session.registry.add() for _ in range(3)]
    session.lifecycle.set_front_channel(2)

    if shrink == "remove":
        session.registry.remove(ids[2])
    else:
        session.registry.set_active(ids[2], False)

    assert session.lifecycle.front_channel == 1
    assert [e.checked for e in coordinator.bring_to_front_menu.entries] == [False, True]

    # A channel added later does not silently become the front channel
    session.registry.add()
    assert session.lifecycle.front_channel == 1
    assert [e.checked for e in coordinator.bring_to_front_menu.entries] == [False, True, False]


def test_front_channel_resets_when_no_channel_is_active(session, coordinator):
    a = session.registry.add()
    b = session.registry.add()
    session.lifecycle.set_front_channel(1)
    session.registry.remove(b)
    session.registry.remove(a)
    assert session.lifecycle.front_channel == 0
    assert coordinator.bring_to_front_menu.entries == ()


def test_label_and_color_patch_entry_in_place(session, coordinator):
    session.registry.add()
    b = session.registry.add()
    before = coordinator.show_hide_menu.entries[0]

    session.registry.set_label(b, "Voltage")
    session.registry.set_color(b, (9, 9, 9))

    entries = coordinator.show_hide_menu.entries
    assert entries[0] == before
    assert (entries[1].label, entries[1].color) == ("Voltage", (9, 9, 9))
    assert coordinator.bring_to_front_menu.entries[1].label == "Voltage"


def test_positions_follow_active_order_after_removal(session, coordinator):
    ids = [session.registry.add() for _ in range(3)]
    session.registry.remove(ids[0])
    entries = coordinator.show_hide_menu.entries
    assert [(e.position, e.channel_id) for e in entries] == [(0, ids[1]), (1, ids[2])]
    entries[0].toggle(False)
    assert not session.registry.is_visible(ids[1])


# ---- phase presentation ----

def test_phase_profiles_drive_actions_and_status(session, coordinator):
    session.registry.add()
    coordinator.start_acquisition()
    assert coordinator.enabled_actions == frozenset({Action.STOP})
    assert coordinator.status.state_text == "Running"
    assert not coordinator.is_action_enabled(Action.IMPORT_DATA)

    coordinator.stop_acquisition()
    assert session.phase is Phase.STOPPED
    assert coordinator.is_action_enabled(Action.EXPORT_DATA)
    assert coordinator.is_action_enabled(Action.START)
    assert coordinator.status.state_text == "Stopped"


def test_data_loaded_hides_runtime_and_stats(session, coordinator):
    _enter_data_loaded(session)
    status = coordinator.status
    assert status.state_text == "Data File loaded"
    assert not status.runtime_visible
    assert not status.stats_visible
    assert coordinator.is_action_enabled(Action.EXPORT_IMAGE)
    assert not coordinator.is_action_enabled(Action.EXPORT_DATA)


def test_stats_text_follows_counters(session, coordinator):
    session.registry.add()
    coordinator.start_acquisition()
    session.sink.push([(True, 1.0)])
    session.sink.push([(False, 0.0)])
    assert coordinator.status.stats_text == "Success: 1\tErrors: 1"


def test_window_title_tracks_file_paths(session, coordinator):
    _enter_data_loaded(session, "/data/run1.csv")
    assert coordinator.window_title == f"{APP_NAME} - run1.csv"

    session.discard_loaded_data()

    assert session.lifecycle.data_file_path == ""
    assert session.lifecycle.window_title_detail == ""
    assert coordinator.window_title == APP_NAME


def test_reload_enabled_only_with_project_file(session, coordinator, collaborators):
    assert not coordinator.is_action_enabled(Action.RELOAD_PROJECT)
    coordinator.reload_project()
    assert collaborators.calls == []

    session.lifecycle.set_project_file_path("/projects/pump.mbs")

    assert coordinator.is_action_enabled(Action.RELOAD_PROJECT)
    assert coordinator.window_title == f"{APP_NAME} - pump.mbs"
    coordinator.reload_project()
    assert collaborators.names() == ["reload_project_file"]


# ---- runtime tick ----

def test_runtime_tick_renders_elapsed_time(session, coordinator, scheduler, clock, recorder):
    session.registry.add()
    coordinator.start_acquisition()
    assert len(scheduler.pending) == 1

    clock.advance(3_725_000)
    scheduler.fire_next()

    assert coordinator.status.runtime_text == "Runtime: 1 hours, 2 minutes 5 seconds"
    assert recorder.of(ChangeKind.RUNTIME_TICK)[-1].data == coordinator.status.runtime_text
    assert len(scheduler.pending) == 1
    assert set(scheduler.scheduled_delays) == {RUNTIME_TICK_MS}


def test_runtime_tick_after_stop_renders_once_without_rescheduling(session, coordinator, scheduler, clock):
    session.registry.add()
    coordinator.start_acquisition()
    clock.advance(2000)
    coordinator.stop_acquisition()

    scheduler.fire_next()

    assert coordinator.status.runtime_text == "Runtime: 0 hours, 0 minutes 2 seconds"
    assert scheduler.pending == []


def test_restart_before_tick_fires_keeps_single_chain(session, coordinator, scheduler):
    session.registry.add()
    coordinator.start_acquisition()
    coordinator.stop_acquisition()
    coordinator.start_acquisition()
    assert len(scheduler.pending) == 1
    scheduler.fire_next()
    assert len(scheduler.pending) == 1


def test_ticks_reschedule_from_now(session, coordinator, scheduler, clock):
    session.registry.add()
    coordinator.start_acquisition()
    for _ in range(4):
        clock.advance(RUNTIME_TICK_MS + 40)
        assert scheduler.run_due() == 1
    assert scheduler.scheduled_delays == [RUNTIME_TICK_MS] * 5


# ---- commands ----

def test_start_stop_call_transport(session, coordinator, collaborators):
    session.registry.add()
    coordinator.start_acquisition()
    coordinator.stop_acquisition()
    assert collaborators.names() == ["start_communication", "stop_communication"]


def test_log_export_follows_setting(session, scheduler, collaborators):
    store = AppSettingsStore(InMemoryPersistence({"write_during_log": True}))
    coordinator = PresentationCoordinator(
        session, scheduler=scheduler, collaborators=collaborators.build(), settings_store=store
    )
    session.registry.add()
    coordinator.start_acquisition()
    coordinator.stop_acquisition()
    assert ("set_log_export", (True,)) in collaborators.calls
    assert ("set_log_export", (False,)) in collaborators.calls
    coordinator.close()


def test_modifier_and_focus(session, coordinator):
    coordinator.set_modifier_held(True)
    assert session.lifecycle.cursor_active
    assert not coordinator.context_menu_allowed
    coordinator.focus_lost()
    assert coordinator.context_menu_allowed


def test_add_note_and_marker_panel(session, coordinator):
    index = coordinator.add_note(1.5, 2.5, "peak")
    assert session.annotations.note(index) == Note(1.5, 2.5, "peak")
    assert not coordinator.marker_panel_visible
    session.lifecycle.set_start_marker_pos(1.0)
    session.lifecycle.set_end_marker_pos(2.0)
    assert coordinator.marker_panel_visible
    assert coordinator.highlight_samples_checked


def test_exports_forward_only_when_enabled(session, coordinator, collaborators):
    assert not coordinator.export_data("/tmp/out.csv")
    assert coordinator.export_settings("/tmp/out.mbs")
    session.registry.add()
    coordinator.start_acquisition()
    coordinator.stop_acquisition()
    assert coordinator.export_data("/tmp/out.csv")
    assert ("export_data_file", ("/tmp/out.csv",)) in collaborators.calls
    assert ("export_project_file", ("/tmp/out.mbs",)) in collaborators.calls


def test_settings_dialogs(coordinator, collaborators):
    assert coordinator.open_settings_dialog(Action.CONNECTION_SETTINGS)
    assert collaborators.calls == [("open_settings_dialog", (Action.CONNECTION_SETTINGS,))]
    with pytest.raises(ValueError):
        coordinator.open_settings_dialog(Action.START)


# ---- file dispatch ----

def test_dispatch_mixed_case_csv_routes_to_data_import(session, coordinator, collaborators):
    kind = coordinator.dispatch_files(["/tmp/data/Run.CSV"])
    assert kind is FileKind.DATA
    assert collaborators.calls == [("load_data_file", ("/tmp/data/Run.CSV",))]
    assert session.lifecycle.last_dir == "/tmp/data"


def test_dispatch_unknown_suffix_is_ignored(session, coordinator, collaborators, recorder):
    recorder.clear()
    assert coordinator.dispatch_files(["/tmp/data/file.unknown"]) is None
    assert collaborators.calls == []
    assert recorder.events == []


def test_dispatch_last_path_wins(coordinator, collaborators):
    assert coordinator.dispatch_files(["a.csv", "b.mbs"]) is FileKind.PROJECT_SETTINGS
    assert collaborators.names() == ["load_project_file"]


def test_dispatch_refused_while_running(session, coordinator, collaborators):
    session.registry.add()
    coordinator.start_acquisition()
    collaborators.calls.clear()
    assert coordinator.dispatch_files(["/tmp/x.csv"]) is None
    assert collaborators.calls == []


def test_dispatch_empty_payload(coordinator):
    assert coordinator.dispatch_files([]) is None


def test_register_file_in_data_loaded_needs_confirmation(session, coordinator, collaborators):
    _enter_data_loaded(session)

    coordinator.dispatch_files(["/regs/defs.mbc"], confirm_discard=lambda: False)
    assert session.phase is Phase.DATA_LOADED
    assert "open_register_dialog" not in collaborators.names()

    coordinator.dispatch_files(["/regs/defs.mbc"], confirm_discard=lambda: True)
    assert session.phase is Phase.IDLE
    assert len(session.registry) == 0
    assert ("open_register_dialog", ("/regs/defs.mbc",)) in collaborators.calls


def test_register_dialog_outside_data_loaded(coordinator, collaborators):
    assert coordinator.open_register_dialog()
    assert collaborators.calls == [("open_register_dialog", (None,))]


# ---- notes persistence ----

def test_save_request_writes_dirty_notes(session, coordinator, collaborators):
    _enter_data_loaded(session, "/data/run1.csv", dirty=True)
    session.annotations.request_data_file_update()
    assert collaborators.calls == [("update_note_lines", ("/data/run1.csv",))]


def test_save_request_ignored_when_clean(session, coordinator, collaborators):
    _enter_data_loaded(session)
    session.annotations.request_data_file_update()
    assert collaborators.calls == []


# ---- close arbitration ----

def test_close_without_loaded_data_needs_no_prompt(session, coordinator):
    session.annotations.add(Note(0.0, 0.0))
    assert coordinator.request_close(_never_prompt)


def test_close_with_clean_notes_needs_no_prompt(session, coordinator):
    _enter_data_loaded(session)
    assert coordinator.request_close(_never_prompt)


def test_close_cancel(session, coordinator, collaborators):
    _enter_data_loaded(session, dirty=True)
    assert not coordinator.request_close(lambda: CloseChoice.CANCEL)
    assert collaborators.calls == []


def test_close_discard(session, coordinator, collaborators):
    _enter_data_loaded(session, dirty=True)
    assert coordinator.request_close(lambda: CloseChoice.DISCARD)
    assert collaborators.calls == []


def test_close_save_failure_aborts(session, coordinator, collaborators):
    _enter_data_loaded(session, "/data/run1.csv", dirty=True)
    collaborators.save_result = False

    assert not coordinator.request_close(lambda: CloseChoice.SAVE)

    assert session.phase is Phase.DATA_LOADED
    assert collaborators.calls == [("update_note_lines", ("/data/run1.csv",))]


def test_close_save_success(session, coordinator, collaborators):
    _enter_data_loaded(session, dirty=True)
    assert coordinator.request_close(lambda: CloseChoice.SAVE)


def test_close_unsubscribes(session, scheduler):
    before = session.bus.listener_count
    coordinator = PresentationCoordinator(session, scheduler=scheduler)
    assert session.bus.listener_count == before + 1
    coordinator.close()
    coordinator.close()
    assert session.bus.listener_count == before
