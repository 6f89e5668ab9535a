import json
from datetime import date

from services.export_service import ExportSerializer, serialize_payload
from services.settings_store import AppSettings, SettingsStore
from tests.factories import create_store


def test_export_payload_shape(repo, tmp_path):
    settings = SettingsStore(tmp_path)
    settings.save(AppSettings(show_announcement=False, announcement_content="hello"))
    sid = create_store(repo, "Sushi", delivery_threshold=0)
    result = ExportSerializer(repo, settings).export(today=date(2024, 3, 5))
    data = json.loads(result.content)
    assert data["version"] == 1
    assert data["settings"] == {"showAnnouncement": False, "announcementContent": "hello"}
    assert data["stores"][0]["id"] == sid
    assert data["stores"][0]["deliveryThreshold"] == 0
    assert result.suggested_filename == "food-map-backup-2024-03-05.json"
    assert result.store_count == 1


def test_export_empty_store_uses_default_settings(repo, tmp_path):
    result = ExportSerializer(repo, SettingsStore(tmp_path)).export()
    data = json.loads(result.content)
    assert data["stores"] == []
    assert data["settings"]["showAnnouncement"] is True


def test_export_is_read_only(repo, tmp_path):
    create_store(repo, "A")
    before = [r.to_dict() for r in repo.list_all()]
    ExportSerializer(repo, SettingsStore(tmp_path)).export()
    assert [r.to_dict() for r in repo.list_all()] == before


def test_serialize_keeps_non_ascii_readable():
    text = serialize_payload({"name": "牛肉麵"})
    assert "牛肉麵" in text


def test_write_to_directory_uses_suggested_name(repo, tmp_path):
    create_store(repo, "A")
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    path = ExportSerializer(repo, SettingsStore(tmp_path)).write_to(out_dir, today=date(2025, 1, 2))
    assert path == out_dir / "food-map-backup-2025-01-02.json"
    assert json.loads(path.read_text(encoding="utf-8"))["stores"][0]["name"] == "A"
    assert not (out_dir / "food-map-backup-2025-01-02.json.tmp").exists()


def test_write_to_explicit_file(repo, tmp_path):
    target = tmp_path / "nested" / "backup.json"
    path = ExportSerializer(repo, SettingsStore(tmp_path)).write_to(target)
    assert path == target
    assert json.loads(target.read_text(encoding="utf-8"))["version"] == 1
