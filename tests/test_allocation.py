from paint_inventory import allocation, audit, codec, crud
from paint_inventory.errors import ErrorKind


def test_allocate_auto_hands_out_consecutive_codes(db_session):
    assert allocation.allocate_auto(db_session).value == "H66AAA00001"
    assert allocation.allocate_auto(db_session).value == "H66AAA00002"
    assert allocation.get_next_cursor(db_session) == (3, "H66AAA00003")


def test_allocate_auto_skips_codes_already_in_use(db_session, make_item):
    make_item("H66AAA00001")

    assert allocation.allocate_auto(db_session).value == "H66AAA00002"


def test_literal_cursor_is_consumed_once(db_session, admin):
    crud.set_setting(db_session, crud.NEXT_ID_KEY, "7")
    allocation.set_next_cursor(db_session, "SPECIAL-7", admin)

    assert allocation.get_next_cursor(db_session) == ("SPECIAL-7", "SPECIAL-7")
    assert allocation.allocate_auto(db_session).value == "SPECIAL-7"
    # The counter that was in force moves on by one
    assert allocation.allocate_auto(db_session).value == codec.encode(8)


def test_literal_cursor_collision_leaves_cursor(db_session, admin, make_item):
    make_item("TAKEN")
    allocation.set_next_cursor(db_session, "TAKEN", admin)

    result = allocation.allocate_auto(db_session)

    assert result.kind == ErrorKind.DUPLICATE_ID
    assert crud.get_setting(db_session, crud.NEXT_ID_KEY) == "TAKEN"


def test_interleaved_allocation_retries(db_session, session_factory, monkeypatch):
    """Another caller advances the cursor between our read and our swap."""
    real_compare_and_set = crud.compare_and_set_setting
    other_session = session_factory()
    state = {"raced": False, "winner": None}

    def racing_compare_and_set(db, key, expected, new):
        if not state["raced"]:
            state["raced"] = True
            state["winner"] = allocation.allocate_auto(other_session).value
        return real_compare_and_set(db, key, expected, new)

    monkeypatch.setattr(crud, "compare_and_set_setting", racing_compare_and_set)

    ours = allocation.allocate_auto(db_session).value
    other_session.close()

    assert state["winner"] == "H66AAA00001"
    assert ours == "H66AAA00002"
    assert crud.get_setting(db_session, crud.NEXT_ID_KEY) == "3"


def test_many_callers_get_distinct_contiguous_ids(db_session, session_factory):
    sessions = [session_factory() for _ in range(4)]
    allocated = []
    for round_number in range(5):
        for session in sessions:
            allocated.append(allocation.allocate_auto(session).value)
    for session in sessions:
        session.close()

    assert len(set(allocated)) == 20
    assert sorted(allocated) == [codec.encode(n) for n in range(1, 21)]


def test_allocate_auto_gives_up_when_cursor_never_settles(db_session, monkeypatch):
    monkeypatch.setattr(crud, "compare_and_set_setting", lambda *args: False)

    assert allocation.allocate_auto(db_session).kind == ErrorKind.UNREACHABLE


class TestAllocateCustom:
    def test_accepts_any_non_empty_id(self, db_session):
        assert allocation.allocate_custom(db_session, "Shop Blue #2").value == "Shop Blue #2"

    def test_normalizes(self, db_session):
        assert allocation.allocate_custom(db_session, " h66abc00001 ").value == "H66ABC00001"
        assert allocation.allocate_custom(db_session, "42").value == "0042"

    def test_rejects_blank(self, db_session):
        assert allocation.allocate_custom(db_session, "   ").kind == ErrorKind.INVALID_INPUT

    def test_rejects_taken(self, db_session, make_item):
        make_item("0042")

        assert allocation.allocate_custom(db_session, "42").kind == ErrorKind.DUPLICATE_ID


class TestSetNextCursor:
    def test_admin_only(self, db_session, user):
        result = allocation.set_next_cursor(db_session, 10, user)

        assert result.kind == ErrorKind.NOT_AUTHORIZED
        assert crud.get_setting(db_session, crud.NEXT_ID_KEY) == "1"

    def test_integer(self, db_session, admin):
        assert allocation.set_next_cursor(db_session, 42, admin).value == 42
        assert allocation.get_next_cursor(db_session) == (42, "H66AAA00042")

    def test_numeric_string(self, db_session, admin):
        assert allocation.set_next_cursor(db_session, " 15 ", admin).value == 15

    def test_code_is_stored_as_its_counter(self, db_session, admin):
        assert allocation.set_next_cursor(db_session, "h66aab00000", admin).value == 100001
        assert allocation.allocate_auto(db_session).value == "H66AAB00000"

    def test_rejects_invalid_values(self, db_session, admin):
        for value in ("", "   ", 0, -3, "-3", None, True):
            assert allocation.set_next_cursor(db_session, value, admin).kind == ErrorKind.INVALID_INPUT

    def test_rejects_counters_past_the_code_range(self, db_session, admin):
        for value in (codec.MAX_COUNTER + 1, str(codec.MAX_COUNTER + 1)):
            assert allocation.set_next_cursor(db_session, value, admin).kind == ErrorKind.INVALID_INPUT
        assert crud.get_setting(db_session, crud.NEXT_ID_KEY) == "1"

        assert allocation.set_next_cursor(db_session, codec.MAX_COUNTER, admin).success

    def test_stored_out_of_range_counter_is_still_readable(self, db_session):
        crud.set_setting(db_session, crud.NEXT_ID_KEY, str(codec.MAX_COUNTER + 1))

        assert allocation.get_next_cursor(db_session) == (codec.MAX_COUNTER + 1, str(codec.MAX_COUNTER + 1))
        assert allocation.allocate_auto(db_session).kind == ErrorKind.INVALID_INPUT

    def test_emits_audit_entry(self, db_session, admin):
        allocation.set_next_cursor(db_session, "SPECIAL-1", admin)

        entry = audit.list_entries(db_session, 1)[0]
        assert entry.action == "set_next_id"
        assert entry.item_id is None
        assert entry.user_name == "Admin"
        assert entry.details.next_id == "SPECIAL-1"
