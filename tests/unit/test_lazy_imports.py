"""Tests for lazy import system in nostrpool.__init__."""

from __future__ import annotations

import importlib
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in nostrpool.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Importing nostrpool does not eagerly load subpackages."""
        saved = {name: mod for name, mod in sys.modules.items() if name.startswith("nostrpool")}
        for name in saved:
            del sys.modules[name]
        try:
            importlib.import_module("nostrpool")
            assert "nostrpool.core" not in sys.modules
            assert "nostrpool.models" not in sys.modules
            assert "nostrpool.utils" not in sys.modules
        finally:
            for name in [n for n in sys.modules if n.startswith("nostrpool")]:
                del sys.modules[name]
            sys.modules.update(saved)

    def test_lazy_import_resolves_on_access(self) -> None:
        from nostrpool import NostrClient
        from nostrpool.core.client import NostrClient as DirectNostrClient

        assert NostrClient is DirectNostrClient

    def test_lazy_import_caches_after_first_access(self) -> None:
        import nostrpool

        _ = nostrpool.Event
        assert "Event" in vars(nostrpool)

    def test_lazy_import_invalid_attribute(self) -> None:
        import nostrpool

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(nostrpool, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        import nostrpool

        assert set(nostrpool.__all__) == set(nostrpool._LAZY_IMPORTS)

    def test_dir_returns_all(self) -> None:
        import nostrpool

        assert dir(nostrpool) == nostrpool.__all__

    def test_version_is_accessible(self) -> None:
        import nostrpool

        assert isinstance(nostrpool.__version__, str)
        assert nostrpool.__version__
