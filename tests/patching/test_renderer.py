"""Tests for the SourceRenderer."""

from live_patcher.patching.analyzer import SourceAnalyzer
from live_patcher.patching.normalizer import nodes_equal
from live_patcher.patching.renderer import SourceRenderer, UnitSnapshot


def _snapshot(source: str, namespace=None) -> UnitSnapshot:
    definition = SourceAnalyzer().extract(source, namespace)[0]
    return UnitSnapshot(node=definition.node, namespace=definition.namespace,
                        imports=definition.imports)


class TestRender:
    def test_without_namespace(self):
        text = SourceRenderer().render(_snapshot("def f():\n    return 1"))
        assert text == "def f():\n    return 1"

    def test_namespace_line_then_imports_then_unit(self):
        text = SourceRenderer().render(_snapshot("import os\ndef f():\n    return os.sep", "app"))
        assert text == "# namespace: app\nimport os\n\ndef f():\n    return os.sep"

    def test_comments_and_formatting_preserved(self):
        source = (
            "class C:\n"
            '    """Sample doc."""\n'
            "\n"
            "    # keep me\n"
            "    def m(self):\n"
            "        return 42  # answer\n"
        )
        text = SourceRenderer().render(_snapshot(source))
        assert text == source.rstrip("\n")

    def test_rendered_source_parses_back(self):
        source = "import os\n\nclass C(object):\n    @staticmethod\n    def m(x: int = 1) -> int:\n        return x\n"
        snapshot = _snapshot(source, "pkg.mod")
        text = SourceRenderer().render(snapshot)

        reparsed = SourceAnalyzer().extract(text)[0]
        assert reparsed.namespace == "pkg.mod"
        assert nodes_equal(reparsed.node, snapshot.node)


class TestRenderAll:
    def test_functions_then_classes_joined_by_blank_line(self):
        renderer = SourceRenderer()
        text = renderer.render_all(
            [_snapshot("def f():\n    return 1")],
            [_snapshot("class C:\n    pass")],
        )
        assert text == "def f():\n    return 1\n\nclass C:\n    pass"

    def test_empty(self):
        assert SourceRenderer().render_all([], []) == ""
