""" Tests for dynpool.core.task """

import dataclasses
import pickle

import pytest

from dynpool.core.task import ExecutionResult, Task, TaskMode


class TestTask:
    """ Task construction """

    def test_injected(self):
        """ Injected tasks pick their protocol from is_async """
        task = Task.injected("def f():\n    pass\n", "f", [1, 2], ["json"])

        assert task.mode is TaskMode.INJECTED
        assert task.arguments == (1, 2)
        assert task.dependency_names == ("json",)
        assert Task.injected("", "f", is_async=False).mode is TaskMode.INJECTED_SYNC

    def test_bundle(self):
        """ Bundle tasks carry no dependencies """
        task = Task.bundle("code", "f", [3])

        assert task.mode is TaskMode.BUNDLE
        assert task.dependency_names == ()
        assert task.arguments == (3,)

    def test_mode_from_value(self):
        """ The protocol name converts to the mode """
        assert Task("execute_sync", "", "f").mode is TaskMode.INJECTED_SYNC

        with pytest.raises(ValueError):
            Task("execute_later", "", "f")

    def test_immutable(self):
        """ Tasks can not be changed once created """
        task = Task.bundle("code", "f")

        with pytest.raises(dataclasses.FrozenInstanceError):
            task.target_name = "g"

    def test_unique_ids(self):
        """ Every task gets its own id """
        assert Task.bundle("", "f").task_id != Task.bundle("", "f").task_id

    def test_pickles(self):
        """ Tasks travel over the worker pipe """
        task = Task.injected("def f():\n    pass\n", "f", [{"a": 1}])

        assert pickle.loads(pickle.dumps(task)) == task


class TestExecutionResult:
    """ ExecutionResult helpers """

    def test_failure(self):
        """ failure() keeps message, type and trace """
        try:
            raise KeyError("missing")
        except KeyError as err:
            result = ExecutionResult.failure(err, function_name="f")

        assert result.success is False
        assert result.error == "'missing'"
        assert result.error_type == "KeyError"
        assert "raise KeyError" in result.stack
        assert result.function_name == "f"

    def test_failure_without_message(self):
        """ Exceptions without a message fall back to their type """
        assert ExecutionResult.failure(RuntimeError()).error == "RuntimeError"

    def test_to_dict_success(self):
        """ Unset fields are left out, value is kept even when None """
        result = ExecutionResult(success=True, value=None, dependencies_loaded=["json"])
        data = result.to_dict()

        assert data["success"] is True
        assert "value" in data and data["value"] is None
        assert data["dependencies_loaded"] == ["json"]
        assert "error" not in data
        assert "bundle_size" not in data
        assert data["timestamp"].endswith("+00:00")

    def test_to_dict_failure(self):
        """ Failures carry no value """
        data = ExecutionResult.failure(ValueError("bad")).to_dict()

        assert data["success"] is False
        assert "value" not in data
        assert data["error"] == "bad"
