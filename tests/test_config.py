"""Tests for configuration, state and article loading."""

import json

from notion_clipper.cli import load_article
from notion_clipper.config import Config, Settings
from notion_clipper.document import Article
from notion_clipper.properties import FieldMapping
from notion_clipper.state import ClipState, State


def test_empty_config(tmp_path):
    config = Config(tmp_path / "cfg")
    assert not config.exists()
    assert config.load() == {}
    assert config.get_credentials().notion_token == ""
    assert config.get_settings() == Settings()


def test_credentials_and_default_database(tmp_path):
    config = Config(tmp_path)
    config.save_credentials("secret_abc")
    config.set_default_database("db-42")

    reloaded = Config(tmp_path)
    assert reloaded.get_credentials().notion_token == "secret_abc"
    assert reloaded.get_default_database() == "db-42"


def test_settings_round_trip_and_unknown_keys(tmp_path):
    config = Config(tmp_path)
    config.save_settings(Settings(download_concurrency=5, migrate_images=False))
    assert config.get_settings().download_concurrency == 5
    assert config.get_settings().migrate_images is False

    assert Settings.from_dict({"download_timeout": 3.0, "bogus": 1}) == Settings(download_timeout=3.0)


def test_field_mapping_persisted_per_database(tmp_path):
    config = Config(tmp_path)
    mapping = {
        "Name": FieldMapping("Name", "title", source_field="title"),
        "Status": FieldMapping("Status", "select", literal_value="Inbox"),
    }
    config.save_field_mapping("db-1", mapping)

    assert config.get_field_mapping("db-1") == mapping
    assert config.get_field_mapping("db-2") == {}


def test_corrupt_config_is_ignored(tmp_path):
    (tmp_path / "config.toml").write_text("not = [valid")
    assert Config(tmp_path).load() == {}


def test_state_records_clips(tmp_path):
    state = State(tmp_path / "state" / "state.json")
    assert state.get_last_database() is None

    state.record_clip(ClipState("https://example.com/a", "page-a", "https://notion.so/a", "db-1"))
    state.record_clip(ClipState("", "page-b", "https://notion.so/b", "db-2"))

    assert state.get_last_database() == "db-2"
    assert state.get_clip("https://example.com/a").page_id == "page-a"
    assert set(state.list_clips()) == {"https://example.com/a", "page-b"}


def test_corrupt_state_is_rebuilt(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{")
    assert State(path).load() == {"clips": {}}


def test_article_from_camel_case_json():
    article = Article.from_dict({
        "title": "T",
        "content": "body",
        "mainImage": "https://x.com/c.png",
        "authorName": "Ana",
        "tags": "single",
        "images": [{"src": "https://x.com/i.png", "alt": "I"}, {"alt": "no src"}],
        "unknownField": 1,
    })
    assert article.main_image == "https://x.com/c.png"
    assert article.author == "Ana"
    assert article.tags == ["single"]
    assert [img.src for img in article.images] == ["https://x.com/i.png"]
    assert article.alt_for("https://x.com/i.png") == "I"
    assert article.get_field("mainImage") == "https://x.com/c.png"


def test_load_article_from_markdown(tmp_path):
    source = tmp_path / "note.md"
    source.write_text("intro\n\n# Heading Title\n\nbody\n", encoding="utf-8")

    article = load_article(source, url="https://example.com/n")

    assert article.title == "Heading Title"
    assert article.url == "https://example.com/n"
    assert "body" in article.content


def test_load_article_from_json(tmp_path):
    source = tmp_path / "clip.json"
    source.write_text(json.dumps({"title": "From JSON", "content": "text"}), encoding="utf-8")

    article = load_article(source, title="Override")

    assert article.title == "Override"
    assert article.content == "text"
