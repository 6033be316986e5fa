import pytest
from pydantic import ValidationError as PydanticValidationError

from flashdeck.application.config import AppConfig, config_file_path, resolve_config
from flashdeck.application.factory import create_session, get_card_store, get_quota_store
from flashdeck.infrastructure.adapters.file_store import FileCardStore
from flashdeck.infrastructure.adapters.http_store import HttpCardStore
from flashdeck.infrastructure.adapters.json_quota_store import JsonQuotaStore


def write_toml(text: str):
    path = config_file_path()
    path.parent.mkdir(parents=True)
    path.write_text(text)


def test_defaults(mock_home):
    config = resolve_config()

    assert config.backend == "file"
    assert config.data_dir == (mock_home / ".local/share/flashdeck").resolve()
    assert config.default_review_cap == 10
    assert config.default_learn_cap == 20
    assert config.api_token is None


def test_toml_file(mock_home):
    write_toml('backend = "http"\napi_url = "https://cards.example.com/api/"\ndefault_review_cap = 5\n')

    config = resolve_config()

    assert config.backend == "http"
    assert config.api_url == "https://cards.example.com/api"
    assert config.default_review_cap == 5


def test_env_beats_toml(mock_home, monkeypatch):
    write_toml("default_review_cap = 5\n")
    monkeypatch.setenv("FLASHDECK_DEFAULT_REVIEW_CAP", "15")

    assert resolve_config().default_review_cap == 15


def test_overrides_beat_env(mock_home, monkeypatch, tmp_path):
    monkeypatch.setenv("FLASHDECK_DATA_DIR", str(tmp_path / "from-env"))

    config = resolve_config({"data_dir": tmp_path / "from-cli", "backend": None})

    assert config.data_dir == (tmp_path / "from-cli").resolve()
    assert config.backend == "file"


def test_rejects_bad_values(mock_home):
    with pytest.raises(PydanticValidationError):
        AppConfig(backend="sqlite")
    with pytest.raises(PydanticValidationError):
        AppConfig(default_learn_cap=-1)


def test_factory_selects_adapters(mock_home, tmp_path):
    file_config = resolve_config({"data_dir": tmp_path})
    http_config = resolve_config({"backend": "http", "api_token": "t0ken"})

    assert isinstance(get_card_store(file_config), FileCardStore)
    assert isinstance(get_card_store(http_config), HttpCardStore)

    quota_store = get_quota_store(file_config)
    assert isinstance(quota_store, JsonQuotaStore)
    assert quota_store.path == tmp_path.resolve() / "quota.json"


def test_create_session(mock_home, tmp_path):
    session = create_session(resolve_config({"data_dir": tmp_path}), "spanish", ahead_days=3)

    assert session.deck_id == "spanish"
    assert session.ahead_days == 3
    assert session.status.value == "loading"
