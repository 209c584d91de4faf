""" Tests for dynpool.modules.dp_metrics """

from unittest.mock import patch

from dynpool.modules.dp_metrics import memory_snapshot


def test_memory_snapshot():
    """ rss and vms are reported in bytes """
    snapshot = memory_snapshot()

    assert set(snapshot) == {"rss", "vms"}
    assert snapshot["rss"] > 0


def test_memory_snapshot_uses_psutil():
    """ Values come from psutil """
    with patch("dynpool.modules.dp_metrics.psutil.Process") as mock_process:
        mock_process.return_value.memory_info.return_value.rss = 10
        mock_process.return_value.memory_info.return_value.vms = 20

        assert memory_snapshot() == {"rss": 10, "vms": 20}
