"""
Unit tests for the inventory export CLI

HTTP calls go through a mocked requests session.
"""

from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

from aftersales_kb.inventory_export import (
    API_PATH,
    MAX_PAGE_SIZE,
    SHEET_NAME,
    InventoryAPIError,
    InventoryClient,
    InventoryConfig,
    main,
    run,
    run_task,
    save_to_excel,
)

ENV_VARS = (
    "INVENTORY_API_BASE_URL",
    "INVENTORY_TOKEN",
    "INVENTORY_APP_KEY",
    "INVENTORY_ADMIN_SECRET",
    "INVENTORY_SIGN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def no_page_delay():
    with patch("aftersales_kb.inventory_export.time.sleep") as sleep:
        yield sleep


def api_response(rows, total, code=200, status_code=200):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.reason = "OK" if response.ok else "Unauthorized"
    response.json.return_value = {"code": code, "msg": "success" if code == 200 else "bad sign", "total": total, "rows": rows}
    return response


def make_config(tmp_path, **overrides):
    values = {
        "base_url": "https://oms.example.com/",
        "token": "token-123",
        "app_key": "app-1",
        "page_size": 2,
        "output_dir": str(tmp_path / "exports"),
        "interval": 0,
    }
    values.update(overrides)
    return InventoryConfig(**values)


class TestConfig:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("INVENTORY_API_BASE_URL", "https://oms.example.com")
        monkeypatch.setenv("INVENTORY_TOKEN", "token-123")
        monkeypatch.setenv("INVENTORY_APP_KEY", "app-1")

        config = InventoryConfig.from_env()

        assert config.base_url == "https://oms.example.com"
        assert config.admin_secret == ""
        assert config.page_size == MAX_PAGE_SIZE

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("INVENTORY_API_BASE_URL", "https://oms.example.com")
        monkeypatch.setenv("INVENTORY_TOKEN", "token-123")
        monkeypatch.setenv("INVENTORY_APP_KEY", "app-1")

        config = InventoryConfig.from_env(base_url="https://test.example.com", output_dir=None)

        assert config.base_url == "https://test.example.com"
        assert config.output_dir == "./inventory_exports"

    def test_missing_credentials(self):
        with pytest.raises(ValueError) as exc_info:
            InventoryConfig.from_env()

        message = str(exc_info.value)
        assert "INVENTORY_API_BASE_URL" in message
        assert "INVENTORY_TOKEN" in message
        assert "INVENTORY_APP_KEY" in message

    @pytest.mark.parametrize("requested, expected", [(1000, MAX_PAGE_SIZE), (0, 1), (100, 100)])
    def test_page_size_clamped(self, monkeypatch, requested, expected):
        monkeypatch.setenv("INVENTORY_API_BASE_URL", "https://oms.example.com")
        monkeypatch.setenv("INVENTORY_TOKEN", "t")
        monkeypatch.setenv("INVENTORY_APP_KEY", "k")

        assert InventoryConfig.from_env(page_size=requested).page_size == expected


class TestInventoryClient:

    def test_request_shape(self, tmp_path):
        session = MagicMock()
        session.post.return_value = api_response([{"sku": "A"}], total=1)
        client = InventoryClient(make_config(tmp_path, admin_secret="s3cret"), session=session)

        client.fetch_page(1)

        args, kwargs = session.post.call_args
        assert args[0] == f"https://oms.example.com{API_PATH}"
        assert kwargs["json"] == {"pageNum": 1, "pageSize": 2, "totalStockGreaterThanZero": True}
        headers = kwargs["headers"]
        assert headers["Authorization"] == "Bearer token-123"
        assert headers["appKey"] == "app-1"
        assert headers["openApiAdminSecret"] == "s3cret"
        assert headers["timestamp"].isdigit()
        assert "sign" not in headers

    def test_http_error(self, tmp_path):
        session = MagicMock()
        session.post.return_value = api_response([], total=0, status_code=401)
        client = InventoryClient(make_config(tmp_path), session=session)

        with pytest.raises(InventoryAPIError, match="HTTP Error: 401"):
            client.fetch_page(1)

    def test_application_error(self, tmp_path):
        session = MagicMock()
        session.post.return_value = api_response([], total=0, code=500)
        client = InventoryClient(make_config(tmp_path), session=session)

        with pytest.raises(InventoryAPIError, match="API Error: 500 - bad sign"):
            client.fetch_page(1)

    def test_fetch_all_pages(self, tmp_path, no_page_delay):
        session = MagicMock()
        session.post.side_effect = [
            api_response([{"sku": "A"}, {"sku": "B"}], total=5),
            api_response([{"sku": "C"}, {"sku": "D"}], total=5),
            api_response([{"sku": "E"}], total=5),
        ]
        client = InventoryClient(make_config(tmp_path), session=session)

        rows = client.fetch_all()

        assert [row["sku"] for row in rows] == ["A", "B", "C", "D", "E"]
        assert [c.kwargs["json"]["pageNum"] for c in session.post.call_args_list] == [1, 2, 3]
        assert no_page_delay.call_count == 2

    def test_fetch_all_stops_at_total(self, tmp_path):
        session = MagicMock()
        session.post.return_value = api_response([{"sku": "A"}, {"sku": "B"}], total=2)
        client = InventoryClient(make_config(tmp_path), session=session)

        assert len(client.fetch_all()) == 2
        assert session.post.call_count == 1


class TestExport:

    def test_save_to_excel(self, tmp_path):
        path = save_to_excel([{"sku": "A", "stock": 3}], str(tmp_path / "out"))

        assert path.exists()
        assert path.name.startswith("inventory_export_")
        frame = pd.read_excel(path, sheet_name=SHEET_NAME, engine="openpyxl")
        assert list(frame["sku"]) == ["A"]

    def test_nothing_to_save(self, tmp_path):
        assert save_to_excel([], str(tmp_path)) is None

    def test_run_task_logs_failures(self, tmp_path):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        client = InventoryClient(make_config(tmp_path), session=session)

        assert run_task(client) is None

    def test_run_repeats_on_interval(self, tmp_path):
        sleep = MagicMock()
        config = make_config(tmp_path, interval=60)

        with patch("aftersales_kb.inventory_export.run_task") as task:
            run(config, max_runs=3, sleep=sleep)

        assert task.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [60, 60]

    def test_run_once(self, tmp_path):
        with patch("aftersales_kb.inventory_export.run_task") as task:
            run(make_config(tmp_path, interval=0), sleep=MagicMock())

        assert task.call_count == 1


class TestMain:

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("aftersales_kb.inventory_export.setup_logging"):
            yield

    @pytest.fixture(autouse=True)
    def isolated_cwd(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

    def test_missing_configuration_exit_code(self):
        assert main(["--interval", "0"]) == 2

    def test_runs_with_arguments(self, monkeypatch, tmp_path):
        monkeypatch.setenv("INVENTORY_TOKEN", "t")
        monkeypatch.setenv("INVENTORY_APP_KEY", "k")

        with patch("aftersales_kb.inventory_export.run") as run_mock:
            code = main([
                "--base-url", "https://oms.example.com",
                "--interval", "0",
                "--page-size", "100",
                "--output-dir", str(tmp_path),
            ])

        assert code == 0
        config = run_mock.call_args.args[0]
        assert config.base_url == "https://oms.example.com"
        assert config.page_size == 100
        assert config.interval == 0

    def test_reads_env_local(self, monkeypatch, tmp_path):
        (tmp_path / ".env.local").write_text(
            "INVENTORY_API_BASE_URL=https://env.example.com\n"
            "INVENTORY_TOKEN=file-token\n"
            "INVENTORY_APP_KEY=file-key\n",
            encoding="utf-8",
        )
        # Register the variables so values loaded from the file are cleaned up
        for name in ENV_VARS:
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)

        with patch("aftersales_kb.inventory_export.run") as run_mock:
            code = main(["--interval", "0", "--output-dir", str(tmp_path)])

        assert code == 0
        config = run_mock.call_args.args[0]
        assert config.base_url == "https://env.example.com"
        assert config.token == "file-token"
        assert config.app_key == "file-key"

    def test_environment_wins_over_env_local(self, monkeypatch, tmp_path):
        (tmp_path / ".env.local").write_text(
            "INVENTORY_API_BASE_URL=https://env.example.com\n"
            "INVENTORY_TOKEN=file-token\n"
            "INVENTORY_APP_KEY=file-key\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("INVENTORY_API_BASE_URL", "https://shell.example.com")
        monkeypatch.setenv("INVENTORY_TOKEN", "shell-token")
        monkeypatch.setenv("INVENTORY_APP_KEY", "shell-key")

        with patch("aftersales_kb.inventory_export.run") as run_mock:
            main(["--interval", "0", "--output-dir", str(tmp_path)])

        assert run_mock.call_args.args[0].token == "shell-token"
