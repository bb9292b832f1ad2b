"""Tests for shared constants.

Verifies the scoring tables and that modules import their numbers from
constants.py instead of redefining them.
"""

import ast
from pathlib import Path

import blips.constants as constants


class TestConstantsAccessible:
    def test_time_constants(self):
        assert constants.SECONDS_PER_DAY == 86400
        assert constants.SECONDS_PER_WEEK == 604800

    def test_surfacing_weights(self):
        assert constants.SCORE_NEVER_SURFACED == 100
        assert constants.SCORE_PER_DAY_UNSEEN == 10
        assert constants.SCORE_RECENTLY_CAPTURED == 50
        assert constants.SCORE_ACTIVE == 30
        assert constants.SCORE_HAS_NOTES == 20
        assert constants.SCORE_LOW_SURFACE_COUNT == 15

    def test_limits(self):
        assert constants.DEFAULT_SURFACE_LIMIT == 5
        assert constants.DEFAULT_RECENT_LIMIT == 10
        assert constants.INDEX_SUMMARY_CHARS == 80
        assert constants.MAX_SUGGESTED_MOVES == 4

    def test_cleanup_thresholds(self):
        assert constants.SUBSTANTIVE_BODY_CHARS == 500
        assert constants.DUPLICATE_KEEP_COUNT == 2


class TestNoDuplicateDefinitions:
    """Upper-case module constants live only in constants.py."""

    def _module_constants(self, filepath: Path) -> set[str]:
        tree = ast.parse(filepath.read_text())
        names = set()
        for node in ast.iter_child_nodes(tree):
            if isinstance(node, ast.Assign):
                for target in node.targets:
                    if isinstance(target, ast.Name) and target.id.isupper():
                        names.add(target.id)
        return names

    def test_no_overlap(self):
        package_dir = Path(constants.__file__).parent
        shared = self._module_constants(package_dir / "constants.py")
        for module in ("surfacing.py", "store.py", "cleanup.py", "models.py"):
            overlap = shared & self._module_constants(package_dir / module)
            assert not overlap, f"{module} redefines {sorted(overlap)}"
