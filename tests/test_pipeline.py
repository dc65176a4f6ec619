#!/usr/bin/env python3
"""
Tests for transcript acquisition, audio download and streamed writes.
All collaborators are in-memory; no network or subprocess access.
"""

import sys
import tempfile
from pathlib import Path
from unittest import mock

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

import unittest

from vidscribe.core.cleanup import FileManager, stream_to_file
from vidscribe.core.constants import TranscriptSource, ErrorCode
from vidscribe.core.error_codes import (
    JobError, InvalidInputError, NotFoundError, UpstreamError,
)
from vidscribe.core.models import VideoMetadata
from vidscribe.core.progress import LoggingProgressTracker
from vidscribe.core.video_download import VideoDownloadService, build_fallback_transcript

from fakes import (
    FakeDownloader, make_info, failing_stream,
    VIDEO_ID, VIDEO_URL, CAPTIONS_VTT, CAPTIONS_TEXT,
)


class TestAcquireTranscript(unittest.TestCase):

    def test_captions_preferred(self):
        service = VideoDownloadService(FakeDownloader(captions=CAPTIONS_VTT))
        result = service.acquire_transcript(VIDEO_URL)
        self.assertEqual(result.source, TranscriptSource.CAPTIONS)
        self.assertEqual(result.text, CAPTIONS_TEXT)
        self.assertEqual(result.video_info.title, "Test Video")

    def test_accepts_bare_video_id(self):
        service = VideoDownloadService(FakeDownloader(captions=CAPTIONS_VTT))
        self.assertEqual(service.acquire_transcript(VIDEO_ID).text, CAPTIONS_TEXT)

    def test_fallback_without_captions(self):
        service = VideoDownloadService(FakeDownloader(captions=None))
        result = service.acquire_transcript(VIDEO_URL)
        self.assertEqual(result.source, TranscriptSource.METADATA)
        self.assertTrue(result.text.startswith("# Test Video"))
        self.assertIn("- **Channel**: Test Channel", result.text)
        self.assertIn("- **Duration**: 3:33", result.text)
        self.assertIn("No comments available.", result.text)

    def test_fallback_when_captions_parse_empty(self):
        service = VideoDownloadService(FakeDownloader(captions="WEBVTT\n\n"))
        result = service.acquire_transcript(VIDEO_URL)
        self.assertEqual(result.source, TranscriptSource.METADATA)
        self.assertTrue(result.text.strip())

    def test_fallback_when_caption_fetch_fails(self):
        service = VideoDownloadService(FakeDownloader(captions_error=UpstreamError("429")))
        self.assertEqual(service.acquire_transcript(VIDEO_URL).source, TranscriptSource.METADATA)

    def test_fallback_uses_metadata_api(self):
        client = mock.Mock()
        client.fetch_video.return_value = VideoMetadata(
            video_id=VIDEO_ID, title="API Title", channel="API Channel",
            description="From the API", published_at="2009-10-25", duration_sec=3723)
        client.fetch_top_comments.return_value = ["Great video", "Classic"]
        service = VideoDownloadService(FakeDownloader(), metadata_client=client, comments_limit=2)

        text = service.acquire_transcript(VIDEO_URL).text
        client.fetch_top_comments.assert_called_once_with(VIDEO_ID, 2)
        self.assertIn("# API Title", text)
        self.assertIn("1:02:03", text)
        self.assertIn("Great video\n\nClassic", text)

    def test_metadata_api_failure_degrades_to_extractor(self):
        client = mock.Mock()
        client.fetch_video.side_effect = UpstreamError("quota exceeded")
        client.fetch_top_comments.side_effect = UpstreamError("quota exceeded")
        service = VideoDownloadService(FakeDownloader(), metadata_client=client)
        text = service.acquire_transcript(VIDEO_URL).text
        self.assertIn("# Test Video", text)
        self.assertIn("No comments available.", text)

    def test_info_not_found_propagates(self):
        service = VideoDownloadService(FakeDownloader(info_error=NotFoundError("Video unavailable")))
        with self.assertRaises(NotFoundError):
            service.acquire_transcript(VIDEO_URL)

    def test_invalid_url(self):
        service = VideoDownloadService(FakeDownloader())
        with self.assertRaises(InvalidInputError):
            service.acquire_transcript("https://example.com/watch")

    def test_fallback_title_defaults_to_id(self):
        text = build_fallback_transcript(VideoMetadata(video_id=VIDEO_ID, title=""))
        self.assertTrue(text.startswith(f"# {VIDEO_ID}"))
        self.assertIn("No description available.", text)


class TestDownloadAudioFile(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_writes_best_audio(self):
        downloader = FakeDownloader(chunks=[b"abc", b"", b"def"])
        service = VideoDownloadService(downloader)
        path = service.download_audio_file(VIDEO_URL, self.tmp / "out", info=make_info())
        self.assertEqual(path.name, f"{VIDEO_ID}.webm")
        self.assertEqual(path.read_bytes(), b"abcdef")
        self.assertEqual(downloader.audio_requests, ["251"])

    def test_mid_stream_error_leaves_no_file(self):
        service = VideoDownloadService(FakeDownloader(chunks=failing_stream))
        with self.assertRaises(UpstreamError):
            service.download_audio_file(VIDEO_URL, self.tmp, info=make_info())
        self.assertFalse((self.tmp / f"{VIDEO_ID}.webm").exists())

    def test_no_audio_format(self):
        service = VideoDownloadService(FakeDownloader(info=make_info(formats=())))
        with self.assertRaises(NotFoundError) as ctx:
            service.download_audio_file(VIDEO_URL, self.tmp)
        self.assertEqual(ctx.exception.code, ErrorCode.NO_AUDIO_FORMAT)
        self.assertEqual(list(self.tmp.iterdir()), [])


class TestStreamToFile(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "audio.webm"

    def tearDown(self):
        self._tmp.cleanup()

    def test_progress_callbacks(self):
        progress = mock.Mock()
        written = stream_to_file(iter([b"ab", b"cde"]), self.path, progress, total_bytes=5)
        self.assertEqual(written, 5)
        progress.on_progress.assert_has_calls([mock.call(2, 5), mock.call(5, 5)])
        progress.on_complete.assert_called_once_with(5)

    def test_source_error_wrapped_and_cleaned(self):
        progress = mock.Mock()
        with self.assertRaises(UpstreamError):
            stream_to_file(failing_stream(), self.path, progress)
        self.assertFalse(self.path.exists())
        progress.on_error.assert_called_once()
        progress.on_complete.assert_not_called()

    def test_typed_error_passes_through(self):
        def stream():
            yield b"a"
            raise NotFoundError("gone mid-stream")

        with self.assertRaises(NotFoundError):
            stream_to_file(stream(), self.path)
        self.assertFalse(self.path.exists())

    def test_source_closed_on_failure(self):
        closed = []

        def stream():
            try:
                yield b"a"
                yield b"b"
            finally:
                closed.append(True)

        progress = mock.Mock()
        progress.on_progress.side_effect = [None, KeyboardInterrupt()]
        with self.assertRaises(KeyboardInterrupt):
            stream_to_file(stream(), self.path, progress)
        self.assertEqual(closed, [True])
        self.assertFalse(self.path.exists())

    def test_sink_error_is_download_failed(self):
        sink = mock.MagicMock()
        sink.__enter__.return_value.write.side_effect = OSError("disk full")
        with mock.patch("builtins.open", return_value=sink):
            with self.assertRaises(JobError) as ctx:
                stream_to_file(iter([b"abc"]), self.path, file_manager=FileManager())
        self.assertEqual(ctx.exception.code, ErrorCode.DOWNLOAD_FAILED)


class TestProgressTracker(unittest.TestCase):

    def test_rate_limited(self):
        now = [0.0]
        tracker = LoggingProgressTracker(interval_sec=1.0, clock=lambda: now[0])
        tracker.on_progress(10, 100)
        now[0] = 0.5
        tracker.on_progress(20, 100)
        now[0] = 1.6
        tracker.on_progress(30, 100)
        self.assertEqual(tracker.reports, 2)
        self.assertEqual(tracker.last.bytes_downloaded, 30)
        self.assertEqual(tracker.last.percent, 30.0)

    def test_unknown_total(self):
        tracker = LoggingProgressTracker(clock=lambda: 0.0)
        tracker.on_progress(2048)
        self.assertIsNone(tracker.last.percent)


class TestFileManager(unittest.TestCase):

    def test_cleanup_never_raises(self):
        fm = FileManager()
        fm.cleanup(None)
        fm.cleanup(Path("/nonexistent/vidscribe/file.webm"))
        fm.cleanup_directory(Path("/nonexistent/vidscribe"))

    def test_cleanup_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            work = FileManager().ensure_directory(Path(tmp) / "a" / "b")
            (work / "f.bin").write_bytes(b"1")
            FileManager().cleanup_directory(Path(tmp) / "a")
            self.assertFalse((Path(tmp) / "a").exists())


if __name__ == "__main__":
    unittest.main()
