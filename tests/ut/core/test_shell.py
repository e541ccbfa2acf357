"""shell / logger 工具单元测试"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from workbench.core.exceptions import ExecutionError
from workbench.utils.logger import JSONFormatter, reset_logging, setup_logging
from workbench.utils.shell import LocalExecutor, run_checked


class TestRunChecked:
    def test_success(self, tmp_path) -> None:
        r = run_checked(
            LocalExecutor(), [sys.executable, "-c", "print('hello')"],
            cwd=str(tmp_path), label="test",
        )
        assert r.success
        assert "hello" in r.stdout

    def test_failure_raises(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="mybuild失败"):
            run_checked(
                LocalExecutor(), [sys.executable, "-c", "import sys; sys.exit(3)"],
                cwd=str(tmp_path), label="mybuild",
            )

    def test_env_passed(self, tmp_path) -> None:
        import os
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = run_checked(
            LocalExecutor(),
            [sys.executable, "-c", "import os; print(os.environ['MY_TEST_VAR'])"],
            cwd=str(tmp_path), env=env,
        )
        assert r.stdout.strip() == "42"


class TestJSONFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            "workbench.test", logging.INFO, __file__, 10, "代码仓已创建: %s", ("core",), None,
        )
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_basic_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(self._record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "workbench.test"
        assert entry["message"] == "代码仓已创建: core"
        assert "space" not in entry

    def test_context_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(self._record(space="team-a", run_id="ab12")))
        assert entry["space"] == "team-a"
        assert entry["run_id"] == "ab12"


class TestSetupLogging:
    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path) -> None:
        try:
            setup_logging("DEBUG", json_output=True, log_file=str(tmp_path / "wb.log"))
            setup_logging("DEBUG", json_output=True, log_file=str(tmp_path / "wb.log"))
            root = logging.getLogger()
            assert len(root.handlers) == 2
            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            reset_logging()
            logging.getLogger().setLevel(logging.WARNING)
