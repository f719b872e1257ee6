"""Tests for source ID allocation, the source registry and URL handling."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dossier.case.state import load_state, save_state
from dossier.errors import AllocationError
from dossier.sources import allocation
from dossier.sources.allocation import format_source_id, parse_source_id
from dossier.sources.registry import SourceRegistry, load_sources, render_sources_md
from dossier.sources.urls import (
    canonicalize_url,
    extract_domain,
    is_homepage,
    is_valid_url,
    normalize_url,
    truncate_url,
    urls_equal,
)


# ===========================================================================
# Source IDs
# ===========================================================================


class TestSourceIds:
    def test_format(self):
        assert format_source_id(1) == "S001"
        assert format_source_id(42) == "S042"
        assert format_source_id(1234) == "S1234"

    def test_format_rejects_zero(self):
        with pytest.raises(ValueError):
            format_source_id(0)

    def test_parse(self):
        assert parse_source_id("S012") == 12
        assert parse_source_id("S1000") == 1000

    @pytest.mark.parametrize("bad", ["S12", "X012", "S01234", "", None])
    def test_parse_invalid(self, bad):
        with pytest.raises(ValueError):
            parse_source_id(bad)


# ===========================================================================
# Allocation
# ===========================================================================


class TestAllocation:
    def test_parallel_batches_do_not_overlap(self, case_dir: Path):
        a = allocation.allocate(case_dir, 3, batch_id="batch_a")
        b = allocation.allocate(case_dir, 2, batch_id="batch_b")

        assert a.source_ids == ["S001", "S002", "S003"]
        assert (b.start, b.end) == (4, 6)
        assert b.source_ids == ["S004", "S005"]

    def test_commit_advances_next_source(self, case_dir: Path):
        a = allocation.allocate(case_dir, 5, batch_id="batch_a")
        assert allocation.commit(case_dir, a.batch_id, 2) == 3

        state = load_state(case_dir)
        assert state["next_source"] == 3
        assert "batch_a" not in state["source_allocations"]

    def test_commit_never_moves_backwards(self, case_dir: Path):
        a = allocation.allocate(case_dir, 3, batch_id="batch_a")
        b = allocation.allocate(case_dir, 3, batch_id="batch_b")
        assert allocation.commit(case_dir, b.batch_id, 3) == 7
        assert allocation.commit(case_dir, a.batch_id, 1) == 7

    def test_commit_outside_range(self, case_dir: Path):
        a = allocation.allocate(case_dir, 2)
        with pytest.raises(AllocationError, match="outside allocation"):
            allocation.commit(case_dir, a.batch_id, 3)

    def test_unknown_batch(self, case_dir: Path):
        with pytest.raises(AllocationError, match="not found"):
            allocation.commit(case_dir, "batch_missing", 1)
        with pytest.raises(AllocationError, match="not found"):
            allocation.release(case_dir, "batch_missing")

    def test_release_keeps_next_source(self, case_dir: Path):
        a = allocation.allocate(case_dir, 4)
        allocation.release(case_dir, a.batch_id)
        assert load_state(case_dir)["next_source"] == 1
        assert allocation.allocate(case_dir, 1).start == 1

    def test_count_must_be_positive(self, case_dir: Path):
        with pytest.raises(ValueError):
            allocation.allocate(case_dir, 0)

    def test_duplicate_batch_id(self, case_dir: Path):
        allocation.allocate(case_dir, 1, batch_id="same")
        with pytest.raises(AllocationError, match="already exists"):
            allocation.allocate(case_dir, 1, batch_id="same")

    def test_stale_allocations(self, case_dir: Path):
        a = allocation.allocate(case_dir, 2, batch_id="old")
        state = load_state(case_dir)
        two_hours_ago = datetime.now(timezone.utc) - timedelta(hours=2)
        state["source_allocations"]["old"]["allocated_at"] = two_hours_ago.isoformat()
        save_state(case_dir, state)

        info = allocation.status(case_dir)
        assert [s["batch_id"] for s in info["stale_allocations"]] == ["old"]
        assert info["active_allocations"] == []

        assert allocation.cleanup_stale(case_dir) == 1
        assert allocation.status(case_dir)["stale_allocations"] == []
        assert a.start == 1


# ===========================================================================
# Registry
# ===========================================================================


class TestSourceRegistry:
    def test_add_assigns_next_id(self, case_dir: Path):
        registry = SourceRegistry(case_dir)
        first = registry.add("https://example.org/a", title="A", source_type="report")
        second = registry.add("https://example.org/b")

        assert first["id"] == "S001"
        assert first["source_type"] == "report"
        assert first["captured"] is False
        assert second["id"] == "S002"
        assert load_state(case_dir)["next_source"] == 3

    def test_add_skips_allocated_range(self, case_dir: Path):
        allocation.allocate(case_dir, 3)
        record = SourceRegistry(case_dir).add("https://example.org/a")
        assert record["id"] == "S004"

    def test_add_rejects_non_http(self, case_dir: Path):
        with pytest.raises(ValueError):
            SourceRegistry(case_dir).add("multiple_sources_synthesis")

    def test_mark_captured(self, case_dir: Path):
        registry = SourceRegistry(case_dir)
        registry.add("https://example.org/a")
        record = registry.mark_captured("S001", "evidence/web/S001", "sha256:abc", title="Report A")
        assert record["captured"] is True
        assert record["hash"] == "sha256:abc"
        assert registry.get("S001")["title"] == "Report A"

    def test_mark_captured_unknown(self, case_dir: Path):
        with pytest.raises(KeyError):
            SourceRegistry(case_dir).mark_captured("S009", "evidence/web/S009", None)

    def test_upsert_merges(self, case_dir: Path):
        registry = SourceRegistry(case_dir)
        registry.upsert({"id": "S005", "url": "https://example.org/x", "title": "X"})
        registry.upsert({"id": "S005", "title": "X (updated)"})
        assert registry.get("S005") == {
            "id": "S005", "url": "https://example.org/x", "title": "X (updated)",
        }
        with pytest.raises(ValueError):
            registry.upsert({"id": "bad"})

    def test_legacy_dict_shape(self, case_dir: Path):
        (case_dir / "sources.json").write_text(json.dumps({
            "S001": {"url": "https://example.org/a", "captured": True},
            "S002": {"url": "https://example.org/b"},
            "notes": "ignored",
        }))
        ids = [s["id"] for s in load_sources(case_dir)]
        assert ids == ["S001", "S002"]

    def test_render_sources_md(self, case_dir: Path):
        registry = SourceRegistry(case_dir)
        registry.add("https://example.org/captured", title="Captured report")
        registry.add("https://example.org/pending", title="Pending page")
        registry.mark_captured(
            "S001", "evidence/web/S001", "sha256:feed", captured_at="2026-03-04T10:15:27Z",
        )

        path = render_sources_md(case_dir)
        text = path.read_text()
        assert path == case_dir / "sources.md"
        assert "| Total Sources | 2 |" in text
        assert "| Captured | 1 |" in text
        assert "### [S001] Captured report" in text
        assert "2026-03-04 10:15:27 UTC" in text
        assert "`sha256:feed`" in text
        assert "## Not Captured" in text
        assert "| S002 | https://example.org/pending | Pending page |" in text

    def test_render_orders_ids_numerically(self, case_dir: Path):
        registry = SourceRegistry(case_dir)
        registry.upsert({"id": "S1000", "url": "https://example.org/late"})
        registry.upsert({"id": "S999", "url": "https://example.org/early"})

        text = render_sources_md(case_dir).read_text()
        assert text.index("| S999 |") < text.index("| S1000 |")


# ===========================================================================
# URLs
# ===========================================================================


class TestUrls:
    def test_normalize(self):
        assert (
            normalize_url("HTTPS://Example.COM:443/Path/?b=2&a=1#frag")
            == "https://example.com/Path?a=1&b=2"
        )
        assert normalize_url("http://example.com") == "http://example.com/"
        assert normalize_url("http://example.com:8080/x/") == "http://example.com:8080/x"
        assert normalize_url("https://example.com/caf%C3%A9") == "https://example.com/café"

    def test_normalize_passthrough(self):
        assert normalize_url("multiple_sources_synthesis") == "multiple_sources_synthesis"
        assert normalize_url("not a url") == "not a url"
        assert normalize_url("") == ""

    def test_urls_equal(self):
        assert urls_equal("https://example.com/a/", "https://EXAMPLE.com/a#top")
        assert not urls_equal("https://example.com/a", "https://example.com/b")

    def test_canonicalize_strips_www_and_tracking(self):
        assert (
            canonicalize_url("https://www.Example.com/story/?utm_source=x&id=7&fbclid=abc")
            == "https://example.com/story?id=7"
        )
        assert canonicalize_url("https://example.com/") == "https://example.com/"
        assert canonicalize_url("") is None
        assert canonicalize_url(None) is None
        assert canonicalize_url("no scheme") is None

    def test_domain_and_homepage(self):
        assert extract_domain("https://News.Example.org/a") == "news.example.org"
        assert extract_domain("nonsense") is None
        assert is_homepage("https://example.org/")
        assert is_homepage("https://example.org")
        assert not is_homepage("https://example.org/about")

    def test_is_valid_url(self):
        assert is_valid_url("https://example.org/a")
        assert is_valid_url("http://example.org")
        assert not is_valid_url("ftp://example.org/file")
        assert not is_valid_url("synthesis:lead-L003")
        assert not is_valid_url(None)

    def test_truncate(self):
        short = "https://example.org/a"
        assert truncate_url(short) == short
        long_url = "https://example.org/" + "segment/" * 20
        truncated = truncate_url(long_url, max_length=40)
        assert truncated.endswith("...")
        assert truncated.startswith("example.org/")
        assert len(truncated) <= 40
