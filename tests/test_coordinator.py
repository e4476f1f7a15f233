"""Tests for the pipeline coordinator."""

import asyncio
import io
import time
import zipfile

import pytest

from conftest import (
    encode,
    image_server,
    letterboxed,
    noisy_image,
    slow_refetch_server,
    unreachable_server,
)
from thumbgrab.catalog import StrategyCatalog
from thumbgrab.config import PipelineConfig
from thumbgrab.errors import ErrorCode, InvalidIdentifier
from thumbgrab.pipeline.coordinator import DiscoveryResult, ThumbnailPipeline
from thumbgrab.pipeline.generator import generate


def _pipeline_call(make_client, transport, catalog, method, *args, config=None, **kwargs):
    async def main():
        async with make_client(transport) as client:
            pipeline = ThumbnailPipeline(
                config or PipelineConfig(), catalog, client, clock=lambda: 1700000000.0
            )
            return await getattr(pipeline, method)(*args, **kwargs)

    return asyncio.run(main())


@pytest.fixture
def served(simple_catalog):
    """Routes serving the first two posters and the last still."""
    candidates = generate("80057281", simple_catalog)
    return {
        candidates[0].url: encode(letterboxed(50, 40, top=4, seed=1)),
        candidates[1].url: encode(letterboxed(50, 40, left=3, seed=2)),
        candidates[5].url: encode(noisy_image(50, 40, seed=3)),
    }


class TestCandidates:
    """Tests for ThumbnailPipeline.candidates()."""

    def test_resolves_url(self, simple_catalog):
        """Test that URLs are resolved before generation."""
        pipeline = ThumbnailPipeline(catalog=simple_catalog)
        candidates = pipeline.candidates("https://www.netflix.com/title/80057281")
        assert [c.id for c in candidates][:2] == ["80057281_posters_0", "80057281_posters_1"]

    def test_invalid_input_raises(self, simple_catalog):
        """Test that unresolvable input raises InvalidIdentifier."""
        with pytest.raises(InvalidIdentifier):
            ThumbnailPipeline(catalog=simple_catalog).candidates("hello")


class TestDiscover:
    """Tests for ThumbnailPipeline.discover()."""

    def test_accepted_candidates(self, simple_catalog, served, make_client):
        """Test that discovery lists reachable candidates in rank order."""
        discovery = _pipeline_call(
            make_client, image_server(served), simple_catalog, "discover", "80057281"
        )

        assert discovery.error is None
        assert discovery.identifier.value == "80057281"
        assert len(discovery.candidates) == 6
        assert [c.rank for c in discovery.accepted] == [0, 1, 5]

    def test_invalid_identifier_is_typed_result(self, simple_catalog, make_client):
        """Test that an invalid identifier is reported, not raised."""
        discovery = _pipeline_call(
            make_client, image_server({}), simple_catalog, "discover", "no id here"
        )

        assert discovery.error is ErrorCode.INVALID_IDENTIFIER
        assert discovery.identifier is None
        assert discovery.candidates == []
        assert discovery.probe is None

    def test_empty_catalog(self, make_client):
        """Test that a catalog producing nothing reports NoCandidatesGenerated."""
        discovery = _pipeline_call(
            make_client, image_server({}), StrategyCatalog(), "discover", "80057281"
        )

        assert discovery.error is ErrorCode.NO_CANDIDATES_GENERATED
        assert discovery.probe is None

    def test_all_probes_failed(self, simple_catalog, make_client):
        """Test that an unreachable catalog reports AllProbesFailed."""
        discovery = _pipeline_call(
            make_client, unreachable_server(), simple_catalog, "discover", "80057281"
        )

        assert discovery.error is ErrorCode.ALL_PROBES_FAILED
        assert discovery.accepted == []


class TestSelect:
    """Tests for ThumbnailPipeline.select()."""

    def _discovery(self, simple_catalog, served, make_client):
        return _pipeline_call(
            make_client, image_server(served), simple_catalog, "discover", "80057281"
        )

    def test_default_is_all_accepted(self, simple_catalog, served, make_client):
        """Test that no ids selects every accepted candidate."""
        discovery = self._discovery(simple_catalog, served, make_client)
        assert ThumbnailPipeline.select(discovery) == discovery.accepted

    def test_keeps_rank_order(self, simple_catalog, served, make_client):
        """Test that selection order follows generation rank, not argument order."""
        discovery = self._discovery(simple_catalog, served, make_client)
        chosen = ThumbnailPipeline.select(
            discovery, ["80057281_stills_2", "80057281_posters_0"]
        )
        assert [c.id for c in chosen] == ["80057281_posters_0", "80057281_stills_2"]

    def test_unaccepted_id_rejected(self, simple_catalog, served, make_client):
        """Test that an id that failed probing cannot be selected."""
        discovery = self._discovery(simple_catalog, served, make_client)
        with pytest.raises(ValueError):
            ThumbnailPipeline.select(discovery, ["80057281_stills_0"])


class TestRun:
    """Tests for ThumbnailPipeline.run()."""

    def test_end_to_end_archive(self, simple_catalog, served, make_client):
        """Test that a full run bundles every accepted candidate."""
        run = _pipeline_call(make_client, image_server(served), simple_catalog, "run", "80057281")

        assert run.success
        assert run.summary.requested == 3
        assert run.summary.succeeded == 3
        assert run.export.filename == "netflix_80057281_1700000000000.zip"
        with zipfile.ZipFile(io.BytesIO(run.export.payload)) as zf:
            assert len(zf.namelist()) == 3

    def test_single_selection_is_raw_image(self, simple_catalog, served, make_client):
        """Test that selecting one id yields a bare image."""
        run = _pipeline_call(
            make_client,
            image_server(served),
            simple_catalog,
            "run",
            "80057281",
            ids=["80057281_posters_1"],
        )

        assert run.success
        assert not run.export.is_archive
        assert run.export.filename == "netflix_80057281_posters_poster_1.jpg"

    def test_discovery_error_skips_export(self, simple_catalog, make_client):
        """Test that nothing is exported when discovery fails."""
        run = _pipeline_call(make_client, unreachable_server(), simple_catalog, "run", "80057281")

        assert run.error is ErrorCode.ALL_PROBES_FAILED
        assert run.export is None
        assert run.summary.requested == 0

    def test_cancelled_discovery_skips_export(self, simple_catalog, served, make_client):
        """Test that a cancelled probe batch does not continue to export."""
        candidates = generate("80057281", simple_catalog)
        delays = {candidates[5].url: 30.0}

        async def main():
            async with make_client(image_server(served, delays)) as client:
                pipeline = ThumbnailPipeline(
                    PipelineConfig(probe_timeout=60), simple_catalog, client
                )
                cancel = asyncio.Event()
                asyncio.get_running_loop().call_later(0.3, cancel.set)
                return await pipeline.run("80057281", cancel=cancel)

        run = asyncio.run(main())

        assert run.discovery.probe.cancelled
        assert run.export is None

    def test_cancel_during_export_stops_archive(self, simple_catalog, served, make_client):
        """Test that a cancel arriving after discovery stops the export stage."""

        async def main():
            cancel = asyncio.Event()
            transport = slow_refetch_server(served, 30.0, on_refetch=cancel.set)
            async with make_client(transport) as client:
                pipeline = ThumbnailPipeline(
                    PipelineConfig(probe_timeout=60), simple_catalog, client
                )
                return await pipeline.run("80057281", cancel=cancel)

        start = time.perf_counter()
        run = asyncio.run(main())

        assert time.perf_counter() - start < 5.0
        assert not run.discovery.probe.cancelled
        assert [c.rank for c in run.discovery.accepted] == [0, 1, 5]
        assert run.cancelled
        assert not run.success
        assert run.error is None
        assert run.export.cancelled
        assert run.export.payload is None
        assert run.export.requested == 3
        assert run.export.manifest.entries == []


class TestExport:
    """Tests for ThumbnailPipeline.export()."""

    def test_without_identifier_rejected(self, simple_catalog):
        """Test that an unresolved discovery cannot be exported."""
        pipeline = ThumbnailPipeline(catalog=simple_catalog)
        with pytest.raises(ValueError):
            asyncio.run(pipeline.export(DiscoveryResult(input="nope")))


class TestSurvey:
    """Tests for ThumbnailPipeline.survey()."""

    def test_counts_per_input(self, simple_catalog, served, make_client):
        """Test that each input gets its own working count."""
        results = _pipeline_call(
            make_client,
            image_server(served),
            simple_catalog,
            "survey",
            ["80057281", "70136120", "garbage"],
        )

        assert [(r.identifier, r.working, r.total) for r in results] == [
            ("80057281", 3, 6),
            ("70136120", 0, 6),
            (None, 0, 0),
        ]
        assert results[1].error is ErrorCode.ALL_PROBES_FAILED
        assert results[2].error is ErrorCode.INVALID_IDENTIFIER
