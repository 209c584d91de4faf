""" Tests for dynpool.modules.dp_exports """

from unittest.mock import patch

from dynpool.modules.dp_exports import analyze_exports


class TestAnalyzeExports:
    """ Static export discovery """

    def test_export_list(self):
        """ An explicit __all__ is authoritative """
        code = (
            "def f():\n    pass\n"
            "def g():\n    pass\n"
            "def h():\n    pass\n"
            "__all__ = ['f', 'g']\n"
        )
        assert analyze_exports(code) == ["f", "g"]

    def test_declarations(self):
        """ Without __all__ public declarations count """
        code = (
            "import os\n"
            "def f():\n    pass\n"
            "async def g():\n    pass\n"
            "class H:\n    pass\n"
            "LIMIT = 3\n"
            "a, (b, *rest) = 1, (2, 3)\n"
            "def _private():\n    pass\n"
        )
        assert analyze_exports(code) == ["f", "g", "H", "LIMIT", "a", "b", "rest"]

    def test_export_list_mutations(self):
        """ +=, append and extend extend the list """
        code = (
            "__all__ = ['f']\n"
            "__all__ += ['g']\n"
            "__all__.append('h')\n"
            "__all__.extend(['i', 'f'])\n"
        )
        assert analyze_exports(code) == ["f", "g", "h", "i"]

    def test_conditional_blocks(self):
        """ Top level if/try blocks are scanned, function bodies are not """
        code = (
            "try:\n"
            "    import numpy\n"
            "    def fast():\n        pass\n"
            "except ImportError:\n"
            "    def slow():\n        pass\n"
            "def outer():\n"
            "    def inner():\n        pass\n"
        )
        assert analyze_exports(code) == ["fast", "slow", "outer"]

    def test_duplicates(self):
        """ Names are unique in first-seen order """
        assert analyze_exports("def f():\n    pass\nf = 1\ng = 2\n") == ["f", "g"]

    def test_empty(self):
        """ Nothing to export """
        assert analyze_exports("") == []
        assert analyze_exports("__all__ = []\ndef f():\n    pass\n") == []

    def test_syntax_error(self):
        """ Unparsable code has no exports and logs a warning """
        with patch("dynpool.modules.dp_exports.log") as mock_log:
            assert analyze_exports("def broken(:\n") == []
        mock_log.warn.assert_called_once()
