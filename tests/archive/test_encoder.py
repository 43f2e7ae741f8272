"""Tests for pagepack/commands/archive/encoder.py."""

from __future__ import annotations

import pytest

from pagepack.commands.archive.encoder import EncodeError, encode, raw_path, to_warc
from pagepack.commands.archive.warc import read_warc
from pagepack.commands.capture.config import CaptureOptions
from pagepack.commands.capture.types import CaptureState, GeneratedExchange
from pagepack.formats.wacz import RAW_PREFIX, WARC_PATH


class TestEncode:
    @pytest.mark.parametrize(
        "state",
        [
            CaptureState.INIT,
            CaptureState.SETUP,
            CaptureState.CAPTURE,
            CaptureState.TEARDOWN,
            CaptureState.ERROR,
        ],
    )
    def test_rejects_unfinished_capture(self, sample_capture, state) -> None:
        sample_capture.state = state
        with pytest.raises(EncodeError, match=state.value):
            encode(sample_capture)
        with pytest.raises(EncodeError):
            to_warc(sample_capture)

    @pytest.mark.parametrize("state", [CaptureState.COMPLETE, CaptureState.PARTIAL])
    def test_accepts_finished_capture(self, sample_capture, state) -> None:
        sample_capture.state = state
        assert WARC_PATH in encode(sample_capture).files

    def test_pages_root_then_screenshot(self, sample_capture, screenshot_exchange) -> None:
        container = encode(sample_capture)
        assert [page.id for page in container.pages] == ["sess-1", screenshot_exchange.id]
        root, shot = container.pages
        assert root.url == "https://example.com/"
        assert root.ts == "2026-03-01T12:00:00.123456Z"
        assert shot.url == "file:///screenshot.png"
        assert shot.title == screenshot_exchange.description

    def test_non_entry_point_not_paged(self, sample_capture) -> None:
        sample_capture.generated_exchanges.append(
            GeneratedExchange(id="extra", url="urn:pagepack:note", is_entry_point=False)
        )
        assert "extra" not in [page.id for page in encode(sample_capture).pages]

    def test_no_raw_by_default(self, sample_capture) -> None:
        container = encode(sample_capture)
        assert container.raw_files == {}
        assert list(container.files) == [WARC_PATH]

    def test_include_raw(self, sample_capture) -> None:
        container = encode(sample_capture, include_raw=True)
        first = sample_capture.exchanges[0]
        assert container.files[raw_path("request", first)] == first.request_bytes
        assert container.files[raw_path("response", first)] == first.response_bytes
        # The pending exchange has no response buffer to store.
        assert len(container.raw_files) == 5
        assert all(path.startswith(RAW_PREFIX) for path in container.raw_files)

    def test_colliding_raw_paths_not_written(self, sample_capture) -> None:
        first, second = sample_capture.exchanges[:2]
        second.timestamp = first.timestamp
        container = encode(sample_capture, include_raw=True)
        assert raw_path("request", first) not in container.files
        assert raw_path("response", first) not in container.files
        assert set(container.raw_files) == {
            raw_path("request", sample_capture.exchanges[2])
        }

    def test_raw_path(self, sample_capture) -> None:
        assert raw_path("request", sample_capture.exchanges[0]) == (
            "raw/request_2026-03-01T12:00:00.123456Z_sess-1"
        )

    def test_provenance_in_extras(self, sample_capture) -> None:
        container = encode(sample_capture)
        assert container.extras == {"provenanceInfo": sample_capture.provenance_info}

    def test_provenance_disabled(self, sample_capture) -> None:
        sample_capture.options = CaptureOptions(provenance_summary=False)
        assert encode(sample_capture).extras is None

    def test_warc_holds_every_exchange(self, sample_capture) -> None:
        records = read_warc(encode(sample_capture).files[WARC_PATH])
        assert len(records) == len(sample_capture.exchanges) + 1

    def test_pure(self, sample_capture) -> None:
        assert encode(sample_capture, include_raw=True) == encode(sample_capture, include_raw=True)

    def test_empty_capture(self) -> None:
        from pagepack.commands.capture.types import Capture

        capture = Capture(url="https://example.com/", state=CaptureState.COMPLETE)
        container = encode(capture)
        assert container.pages == []
        assert read_warc(container.files[WARC_PATH]) == []


class TestToWarc:
    def test_matches_container_warc(self, sample_capture) -> None:
        assert to_warc(sample_capture) == encode(sample_capture).files[WARC_PATH]

    def test_gzip(self, sample_capture) -> None:
        data = to_warc(sample_capture, gzip=True)
        assert data[:2] == b"\x1f\x8b"
        assert len(read_warc(data)) == 4
