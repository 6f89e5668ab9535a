from __future__ import annotations

import json

import pytest

from services.errors import FormatError, ParseError, TransactionFailure
from services.export_service import ExportSerializer
from services.import_service import ImportMode, ImportReconciler, parse_backup
from services.settings_store import SettingsStore
from tests.factories import backup_json, create_store, data_uri, make_repo, wire_record

JUNK_PNG = "data:image/png;base64,aGVsbG8gd29ybGQsIG5vdCBhIHBuZw=="


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path)


@pytest.fixture
def reconciler(repo, settings):
    return ImportReconciler(repo, settings, clock=lambda: 42)


def _names(repo):
    return [r.name for r in repo.list_all()]


def test_merge_updates_by_name_and_adds_rest(repo, reconciler):
    a = create_store(repo, "A", notes="old")
    b = create_store(repo, "B")
    payload = backup_json([wire_record("A", notes="new", id=999), wire_record("C")])
    summary = reconciler.reconcile(payload, "merge")
    assert (summary.added, summary.updated) == (1, 1)
    assert repo.count() == 3
    updated = repo.get_by_id(a)
    assert updated.notes == "new"
    assert updated.id == a
    assert repo.get_by_id(b).name == "B"


def test_merge_is_idempotent(repo, reconciler):
    payload = backup_json([wire_record("A"), wire_record("B")])
    reconciler.reconcile(payload, ImportMode.MERGE)
    first = [r.to_dict() for r in repo.list_all()]
    summary = reconciler.reconcile(payload, ImportMode.MERGE)
    assert summary.added == 0 and summary.updated == 2
    assert [r.to_dict() for r in repo.list_all()] == first


def test_merge_uses_first_match_for_duplicate_names(repo, reconciler):
    first = create_store(repo, "Twin", notes="one")
    second = create_store(repo, "Twin", notes="two")
    reconciler.reconcile(backup_json([wire_record("Twin", notes="merged")]), "merge")
    assert repo.get_by_id(first).notes == "merged"
    assert repo.get_by_id(second).notes == "two"


def test_merge_duplicate_names_within_payload(repo, reconciler):
    payload = backup_json([wire_record("Dup", notes="1"), wire_record("Dup", notes="2")])
    summary = reconciler.reconcile(payload, "merge")
    assert (summary.added, summary.updated) == (1, 1)
    assert [r.notes for r in repo.list_all()] == ["2"]


def test_replace_clears_existing(repo, reconciler):
    create_store(repo, "Old 1")
    create_store(repo, "Old 2")
    summary = reconciler.reconcile(backup_json([wire_record("Fresh")]), "replace")
    assert summary.added == 1
    assert _names(repo) == ["Fresh"]


def test_replace_with_empty_list_empties_store(repo, reconciler):
    create_store(repo, "Old")
    reconciler.reconcile("[]", "replace")
    assert repo.count() == 0


def test_failed_record_rolls_back_everything(repo, reconciler):
    create_store(repo, "Keep me")
    payload = backup_json([wire_record("Good"), wire_record("Bad", deliveryThreshold=-10)])
    with pytest.raises(TransactionFailure) as exc:
        reconciler.reconcile(payload, "replace")
    assert "record #2" in str(exc.value)
    assert _names(repo) == ["Keep me"]


def test_non_object_record_aborts_merge(repo, reconciler):
    create_store(repo, "Keep me")
    with pytest.raises(TransactionFailure):
        reconciler.reconcile(json.dumps([wire_record("New"), "oops"]), "merge")
    assert _names(repo) == ["Keep me"]


def test_junk_image_is_sanitized_not_fatal(repo, reconciler):
    good = data_uri()
    payload = backup_json(
        [wire_record("Junk", menuImage=JUNK_PNG), wire_record("Good", menuImage=good)]
    )
    summary = reconciler.reconcile(payload, "merge")
    assert summary.images_rejected == 1
    by_name = {r.name: r for r in repo.list_all()}
    assert by_name["Junk"].menu_image == ""
    assert by_name["Good"].menu_image == good


def test_missing_updated_at_is_stamped(repo, reconciler):
    record = wire_record("Fresh")
    del record["updatedAt"]
    reconciler.reconcile(json.dumps([record]), "merge")
    assert repo.list_all()[0].updated_at == 42


def test_incoming_updated_at_is_kept(repo, reconciler):
    reconciler.reconcile(json.dumps([wire_record("Kept", updatedAt=123)]), "merge")
    assert repo.list_all()[0].updated_at == 123


@pytest.mark.parametrize("raw", ["{not json", "", b"\xff\xfe\x00"])
def test_malformed_json_raises_parse_error(repo, reconciler, raw):
    create_store(repo, "Untouched")
    with pytest.raises(ParseError):
        reconciler.reconcile(raw, "replace")
    assert _names(repo) == ["Untouched"]


@pytest.mark.parametrize(
    "raw",
    [
        "42",
        '"text"',
        '{"version": 1}',
        '{"stores": {"a": 1}}',
        '{"version": 2, "stores": []}',
        '{"version": "1", "stores": []}',
    ],
)
def test_unrecognised_shape_raises_format_error(reconciler, raw):
    with pytest.raises(FormatError):
        reconciler.reconcile(raw, "merge")


def test_parse_backup_shapes():
    legacy = parse_backup("[]")
    assert legacy.is_legacy and legacy.stores == []
    versioned = parse_backup('{"version": 1, "settings": {}, "stores": []}')
    assert not versioned.is_legacy
    assert versioned.settings == {}
    # object without version is accepted
    assert parse_backup('{"stores": [1]}').stores == [1]


def test_invalid_mode_rejected_before_parsing(repo, reconciler):
    with pytest.raises(ValueError):
        reconciler.reconcile("{not json", "overwrite")


def test_settings_applied_after_commit(repo, reconciler, settings):
    payload = backup_json(
        [wire_record("A")], settings={"showAnnouncement": False, "announcementContent": "公告"}
    )
    summary = reconciler.reconcile(payload, "merge")
    assert summary.settings_applied is True
    cfg = settings.load()
    assert cfg.show_announcement is False
    assert cfg.announcement_content == "公告"


def test_bad_settings_do_not_fail_import(repo, reconciler, caplog):
    payload = backup_json([wire_record("A")], settings={"showAnnouncement": "nope"})
    with caplog.at_level("WARNING"):
        summary = reconciler.reconcile(payload, "merge")
    assert summary.settings_applied is False
    assert _names(repo) == ["A"]
    assert any("settings could not be applied" in r.getMessage() for r in caplog.records)


def test_settings_absent_reports_none(reconciler):
    assert reconciler.reconcile("[]", "merge").settings_applied is None


def test_settings_not_applied_when_import_fails(repo, reconciler, settings):
    payload = backup_json(
        [wire_record("Bad", deliveryThreshold=-1)], settings={"showAnnouncement": False}
    )
    with pytest.raises(TransactionFailure):
        reconciler.reconcile(payload, "merge")
    assert not settings.path().exists()


def test_write_failure_is_wrapped(settings):
    class ExplodingRepo:
        def run_atomic(self, body):
            return body(self)

        def clear_all(self):
            raise RuntimeError("disk full")

    with pytest.raises(TransactionFailure) as exc:
        ImportReconciler(ExplodingRepo(), settings).reconcile("[]", "replace")
    assert "disk full" in str(exc.value)


def test_preview_is_read_only(repo, reconciler):
    create_store(repo, "A")
    create_store(repo, "B")
    payload = backup_json([wire_record("A"), wire_record("C"), wire_record("C")])
    merge = reconciler.preview(payload, "merge")
    assert (merge.would_add, merge.would_update, merge.would_delete) == (1, 2, 0)
    replace = reconciler.preview(payload, "replace")
    assert (replace.would_add, replace.would_update, replace.would_delete) == (3, 0, 2)
    assert _names(repo) == ["A", "B"]


def test_export_then_replace_round_trip(repo, settings, tmp_path):
    create_store(repo, "One", delivery_threshold=0, is_favorite=True, menu_image=data_uri())
    create_store(repo, "Two", delivery_threshold=None, notes="備註")
    before = [r.without_id() for r in repo.list_all()]
    content = ExportSerializer(repo, settings).export().content

    target = make_repo()
    create_store(target, "Stale")
    ImportReconciler(target, SettingsStore(tmp_path / "other")).reconcile(content, "replace")
    assert [r.without_id() for r in target.list_all()] == before


def test_preview_counts_unusable_names_as_invalid(repo, reconciler):
    payload = json.dumps([{"name": ["A"]}, {"name": {"x": 1}}, {"name": "  "}, "text", wire_record("B")])
    preview = reconciler.preview(payload, "merge")
    assert preview.records == 5
    assert preview.invalid == 4
    assert (preview.would_add, preview.would_update) == (1, 0)
    assert _names(repo) == []


def test_blank_image_is_stored_empty_and_not_counted(repo, reconciler):
    summary = reconciler.reconcile(backup_json([wire_record("Blank", menuImage="   ")]), "merge")
    assert summary.images_rejected == 0
    assert repo.list_all()[0].menu_image == ""
