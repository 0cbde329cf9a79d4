import pytest

from core.annotations import AnnotationStore, Note
from core.change_bus import ChangeKind
from test.fixtures.fakes import EventRecorder


@pytest.fixture
def store(bus):
    return AnnotationStore(bus)


def test_add_sets_dirty_once(store, bus):
    recorder = EventRecorder(bus)
    assert store.add(Note(1.0, 2.0, "first")) == 0
    assert store.add(Note(3.0, 4.0, "second")) == 1

    assert store.is_dirty()
    assert recorder.kinds() == [ChangeKind.NOTE_ADDED, ChangeKind.NOTES_DIRTY, ChangeKind.NOTE_ADDED]
    assert recorder.events[0].data == (0, Note(1.0, 2.0, "first"))
    assert [n.text for n in store.all()] == ["first", "second"]


def test_clear_on_empty_store_is_noop(store, bus):
    recorder = EventRecorder(bus)
    assert not store.clear()
    assert not store.is_dirty()
    assert recorder.events == []


def test_clear_non_empty_store_sets_dirty(store, bus):
    store.add(Note(0.0, 0.0))
    store.add(Note(1.0, 1.0))
    store.mark_clean()
    recorder = EventRecorder(bus)

    assert store.clear()

    assert len(store) == 0
    assert store.is_dirty()
    assert recorder.kinds() == [ChangeKind.NOTES_CLEARED, ChangeKind.NOTES_DIRTY]
    assert recorder.events[0].data == 2


def test_mark_clean(store, bus):
    store.add(Note(0.0, 0.0))
    recorder = EventRecorder(bus)
    store.mark_clean()
    store.mark_clean()
    assert not store.is_dirty()
    assert recorder.kinds() == [ChangeKind.NOTES_DIRTY]
    assert recorder.events[0].data is False


def test_edit_and_remove(store, bus):
    store.add(Note(0.0, 0.0, "a"))
    store.mark_clean()
    recorder = EventRecorder(bus)

    assert not store.set_text(0, "a")
    assert store.set_text(0, "b")
    assert store.set_position(0, 5, 6)
    assert store.note(0) == Note(5.0, 6.0, "b")
    removed = store.remove(0)

    assert removed == Note(5.0, 6.0, "b")
    assert recorder.kinds() == [
        ChangeKind.NOTE_CHANGED,
        ChangeKind.NOTES_DIRTY,
        ChangeKind.NOTE_CHANGED,
        ChangeKind.NOTE_REMOVED,
    ]


def test_bad_index_raises(store):
    with pytest.raises(IndexError):
        store.set_text(0, "x")
    with pytest.raises(IndexError):
        store.remove(3)


def test_all_returns_copy(store):
    store.add(Note(0.0, 0.0))
    notes = store.all()
    notes.clear()
    assert len(store) == 1


def test_save_request_event(store, bus):
    recorder = EventRecorder(bus)
    store.request_data_file_update()
    assert recorder.kinds() == [ChangeKind.NOTES_SAVE_REQUESTED]
