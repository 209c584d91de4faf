""" Tests for dynpool.service """

import os
from unittest.mock import AsyncMock, patch

import pytest

from dynpool import service
from dynpool.core.task import ExecutionResult, TaskMode
from dynpool.error import EntryPointNotFoundError
from dynpool.modules.dp_bundler import BundleOptions
from dynpool.modules import dp_worker


@pytest.fixture
def manager(tmp_path):
    """ A manager whose submit runs the task in this process """
    fake = AsyncMock()
    fake.submit.side_effect = dp_worker.run_task
    fake.config.scratch_dir = str(tmp_path / "scratch")
    return fake


class TestExecuteFunction:
    """ execute_function """

    @pytest.mark.asyncio
    async def test_injected(self, manager):
        """ The source runs with its dependencies """
        source = "def size(value):\n    return len(j.dumps(value))\n"
        result = await service.execute_function(source, "size", [[1]], ["json as j"],
                                                manager=manager)

        assert result.value == 3
        assert manager.submit.call_args[0][0].mode is TaskMode.INJECTED

    @pytest.mark.asyncio
    async def test_sync(self, manager):
        """ is_async=False selects the synchronous protocol """
        await service.execute_function("def f():\n    return 1\n", "f", is_async=False,
                                       manager=manager)

        assert manager.submit.call_args[0][0].mode is TaskMode.INJECTED_SYNC

    @pytest.mark.asyncio
    async def test_default_manager(self):
        """ The process-wide manager is used when none is given """
        default = AsyncMock()
        default.submit.return_value = ExecutionResult(success=True, value=1)

        with patch("dynpool.service.get_pool_manager", return_value=default):
            result = await service.execute_function("def f():\n    return 1\n", "f")

        assert result.value == 1
        default.submit.assert_awaited_once()


class TestExecuteFromBundle:
    """ execute_from_bundle """

    @pytest.mark.asyncio
    async def test_bundle_runs(self, tmp_path, manager):
        """ The entry is bundled and its function runs """
        (tmp_path / "helpers.py").write_text("def twice(x):\n    return 2 * x\n")
        entry = tmp_path / "entry.py"
        entry.write_text("from helpers import twice\n\ndef run(x):\n    return twice(x)\n")

        result = await service.execute_from_bundle(str(entry), "run", [4], manager=manager)

        assert result.success is True
        assert result.value == 8
        assert result.bundle_size > 0
        assert manager.submit.call_args[0][0].mode is TaskMode.BUNDLE

    @pytest.mark.asyncio
    async def test_missing_entry_raises(self, tmp_path, manager):
        """ A missing entry point is raised to the caller """
        with pytest.raises(EntryPointNotFoundError):
            await service.execute_from_bundle(str(tmp_path / "nope.py"), "run", manager=manager)
        manager.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_bundle_error_returned(self, tmp_path, manager):
        """ Other bundling errors come back as failed results """
        entry = tmp_path / "entry.py"
        entry.write_text("import surely_missing_module_xyz\n")

        result = await service.execute_from_bundle(str(entry), "run", manager=manager)

        assert result.success is False
        assert result.error_type == "BundleError"
        manager.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_static_export_warning(self, tmp_path, manager):
        """ A target missing from the static exports is only a warning """
        entry = tmp_path / "entry.py"
        entry.write_text("def run():\n    return 1\n")

        with patch("dynpool.service.log") as mock_log:
            result = await service.execute_from_bundle(str(entry), "walk", manager=manager)

        mock_log.warn.assert_called_once()
        assert result.error_type == "ExportNotFoundError"
        assert "Available functions: [run]" in result.error

    @pytest.mark.asyncio
    async def test_options(self, tmp_path, manager):
        """ Bundle options are honoured """
        (tmp_path / "helpers.py").write_text("X = 1\n")
        entry = tmp_path / "entry.py"
        entry.write_text("import helpers\n\ndef run():\n    return helpers.X\n")
        options = BundleOptions(entry_point=str(entry), external=["helpers"])

        result = await service.execute_from_bundle(str(entry), "run", options=options,
                                                   manager=manager)

        assert result.success is False
        assert result.error_type == "ModuleNotFoundError"


class TestExecuteFromCode:
    """ execute_from_code """

    @pytest.mark.asyncio
    async def test_inline_code(self, manager):
        """ Inline code runs and its temp file is removed """
        result = await service.execute_from_code(
            "def double(x):\n    return x * 2\n", "double", [21], manager=manager
        )

        assert result.value == 42
        assert os.listdir(manager.config.scratch_dir) == []

    @pytest.mark.asyncio
    async def test_cleanup_when_bundling_raises(self, tmp_path, manager):
        """ The temp file is removed even when bundling throws """
        scratch_dir = str(tmp_path / "other")

        with patch("dynpool.service.bundle", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                await service.execute_from_code("X = 1\n", "f", manager=manager,
                                                scratch_dir=scratch_dir)

        assert os.listdir(scratch_dir) == []

    @pytest.mark.asyncio
    async def test_syntax_error(self, manager):
        """ Inline code that does not parse is a failed result """
        result = await service.execute_from_code("def broken(:\n", "broken", manager=manager)

        assert result.success is False
        assert result.error_type == "BundleError"
        assert os.listdir(manager.config.scratch_dir) == []
