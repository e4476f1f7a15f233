"""Tests for the probe engine."""

import asyncio
import time

import httpx

from conftest import encode, image_server, noisy_image, unreachable_server
from thumbgrab.config import PipelineConfig
from thumbgrab.errors import ErrorCode
from thumbgrab.pipeline.generator import generate
from thumbgrab.pipeline import probe
from thumbgrab.pipeline.probe import ProbeEngine, probe_candidates


def _probe(make_client, transport, candidates, config=None, cancel_after=None):
    async def main():
        async with make_client(transport) as client:
            engine = ProbeEngine(config or PipelineConfig(), client)
            cancel = None
            if cancel_after is not None:
                cancel = asyncio.Event()
                asyncio.get_running_loop().call_later(cancel_after, cancel.set)
            return await engine.run(candidates, cancel)

    return asyncio.run(main())


class TestProbeEngine:
    """Tests for ProbeEngine.run()."""

    def test_all_reachable(self, simple_catalog, make_client):
        """Test that every served image is accepted with its decoded size."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(16, 9))
        report = _probe(make_client, image_server({c.url: png for c in candidates}), candidates)

        assert report.error is None
        assert report.requested == 6
        assert report.succeeded == 6
        assert report.failed == 0
        assert report.accepted == candidates
        assert all((r.width, r.height) == (16, 9) for r in report.results)

    def test_results_in_rank_order(self, simple_catalog, make_client):
        """Test that completion order doesn't affect result order."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(8, 8))
        routes = {c.url: png for c in candidates}
        # Later candidates finish first.
        delays = {c.url: 0.05 * (len(candidates) - c.rank) for c in candidates}

        report = _probe(make_client, image_server(routes, delays), candidates)

        assert [r.candidate.rank for r in report.results] == list(range(6))

    def test_partial_success(self, simple_catalog, make_client):
        """Test that failures are reported alongside successes."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(8, 8))
        routes = {candidates[1].url: png, candidates[4].url: png, candidates[2].url: 403}

        report = _probe(make_client, image_server(routes), candidates)

        assert report.error is None
        assert [c.id for c in report.accepted] == ["80057281_posters_1", "80057281_stills_1"]
        assert report.failed == 4
        assert report.results[2].error == "HTTP 403"
        assert report.results[0].error == "HTTP 404"

    def test_all_fail(self, simple_catalog, make_client):
        """Test that a batch with no reachable candidate reports AllProbesFailed."""
        candidates = generate("80057281", simple_catalog)

        report = _probe(make_client, unreachable_server(), candidates)

        assert report.error is ErrorCode.ALL_PROBES_FAILED
        assert report.accepted == []
        assert report.requested == 6
        assert len(report.results) == 6
        assert all(not r.reachable and r.error for r in report.results)

    def test_undecodable_body_rejected(self, simple_catalog, make_client):
        """Test that a 200 response that isn't an image is not accepted."""
        candidates = generate("80057281", simple_catalog)[:1]
        routes = {candidates[0].url: b"<html>placeholder</html>"}

        report = _probe(make_client, image_server(routes), candidates)

        assert not report.results[0].reachable
        assert "cannot decode" in report.results[0].error
        assert report.error is ErrorCode.ALL_PROBES_FAILED

    def test_timeout_bounds_slow_candidate(self, simple_catalog, make_client):
        """Test that a hanging server is cut off at the probe timeout."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(8, 8))
        routes = {c.url: png for c in candidates}
        delays = {candidates[0].url: 30.0}
        config = PipelineConfig(probe_timeout=0.2)

        start = time.perf_counter()
        report = _probe(make_client, image_server(routes, delays), candidates, config)
        elapsed = time.perf_counter() - start

        assert elapsed < 5.0
        assert not report.results[0].reachable
        assert report.results[0].error.startswith("timed out")
        assert report.results[0].elapsed_seconds <= config.probe_timeout + 0.5
        assert all(r.elapsed_seconds <= config.probe_timeout + 0.5 for r in report.results)
        assert report.succeeded == 5

    def test_empty_batch(self, make_client):
        """Test that an empty batch reports NoCandidatesGenerated."""
        report = _probe(make_client, image_server({}), [])

        assert report.error is ErrorCode.NO_CANDIDATES_GENERATED
        assert report.results == []
        assert report.requested == 0

    def test_cancellation_returns_partial_report(self, simple_catalog, make_client):
        """Test that cancelling mid-batch keeps only resolved results."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(8, 8))
        routes = {c.url: png for c in candidates}
        delays = {c.url: 30.0 for c in candidates[3:]}

        start = time.perf_counter()
        report = _probe(
            make_client,
            image_server(routes, delays),
            candidates,
            PipelineConfig(probe_timeout=60),
            cancel_after=0.3,
        )

        assert time.perf_counter() - start < 5.0
        assert report.cancelled
        assert report.requested == 6
        assert [r.candidate.rank for r in report.results] == [0, 1, 2]
        assert report.succeeded == 3

    def test_concurrency_bound(self, simple_catalog, make_client):
        """Test that no more than `concurrency` requests are ever in flight."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(8, 8))
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.05)
            in_flight -= 1
            return httpx.Response(200, content=png)

        report = _probe(
            make_client,
            httpx.MockTransport(handler),
            candidates,
            PipelineConfig(concurrency=2),
        )

        assert report.succeeded == 6
        assert peak == 2


class TestProbeCandidates:
    """Tests for the probe_candidates() sync wrapper."""

    def test_runs_batch_with_own_client(self, simple_catalog, monkeypatch):
        """Test that the wrapper builds a client from the config and returns a report."""
        candidates = generate("80057281", simple_catalog)
        png = encode(noisy_image(8, 8))
        transport = image_server({candidates[2].url: png})
        configs = []

        def fake_build_client(config):
            configs.append(config)
            return httpx.AsyncClient(transport=transport)

        monkeypatch.setattr(probe, "build_client", fake_build_client)
        config = PipelineConfig(concurrency=3)

        report = probe_candidates(candidates, config)

        assert configs == [config]
        assert report.requested == 6
        assert [c.id for c in report.accepted] == ["80057281_posters_2"]
        assert report.error is None
