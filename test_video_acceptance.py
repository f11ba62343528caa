import json
import subprocess
import unittest
from unittest.mock import patch

import video_processing
from video_processing import ProbeError, extract_duration, is_video, probe


def info(*streams):
    return {"streams": list(streams)}


class TestVideoAcceptance(unittest.TestCase):
    def test_video_shorter_than_one_second_is_rejected(self):
        self.assertFalse(is_video(info({"codec_type": "video", "duration": 0.9})))

    def test_video_of_exactly_one_second_is_accepted(self):
        self.assertTrue(is_video(info({"codec_type": "video", "duration": 1.0})))

    def test_audio_only_is_rejected(self):
        self.assertFalse(is_video(info({"codec_type": "audio", "duration": 10})))

    def test_no_streams_is_rejected(self):
        self.assertFalse(is_video(info()))

    def test_codec_type_is_case_insensitive(self):
        self.assertTrue(is_video(info({"codec_type": "VIDEO", "duration": 5})))

    def test_duration_comes_from_any_stream(self):
        # Video stream without duration, audio stream carries it
        self.assertTrue(is_video(info(
            {"codec_type": "video"},
            {"codec_type": "audio", "duration": 1500.0},
        )))

    def test_no_durations_means_zero(self):
        probe_info = info({"codec_type": "video"}, {"codec_type": "audio"})
        self.assertEqual(extract_duration(probe_info), 0)
        self.assertFalse(is_video(probe_info))

    def test_extract_duration_takes_maximum(self):
        self.assertEqual(extract_duration(info(
            {"codec_type": "video", "duration": 12.5},
            {"codec_type": "audio", "duration": 13.0},
            {"codec_type": "subtitle"},
        )), 13.0)


class TestProbe(unittest.TestCase):
    def setUp(self):
        patcher_path = patch('video_processing._get_ffprobe_path_from_config', return_value="ffprobe")
        patcher_timeout = patch('config.get_probe_timeout_seconds', return_value=30)
        patcher_path.start()
        patcher_timeout.start()
        self.addCleanup(patcher_path.stop)
        self.addCleanup(patcher_timeout.stop)

    def completed(self, returncode=0, payload=None, stderr=b""):
        stdout = json.dumps(payload or {}).encode("utf-8")
        return subprocess.CompletedProcess(["ffprobe"], returncode, stdout, stderr)

    def test_durations_are_converted_to_float(self):
        payload = {
            "streams": [
                {"index": 0, "codec_type": "video", "duration": "1500.021000"},
                {"index": 1, "codec_type": "audio", "duration": "N/A"},
            ],
            "format": {"duration": "1500.021000"},
        }
        with patch('video_processing.run_interruptible_subprocess', return_value=self.completed(payload=payload)):
            result = probe("/media/ep1.mkv")

        self.assertEqual(result["streams"][0]["duration"], 1500.021)
        self.assertNotIn("duration", result["streams"][1])
        self.assertEqual(result["format"], {"duration": "1500.021000"})
        self.assertTrue(is_video(result))

    def test_nonzero_exit_raises(self):
        failed = self.completed(returncode=1, stderr=b"Invalid data found when processing input")
        with patch('video_processing.run_interruptible_subprocess', return_value=failed):
            with self.assertRaises(ProbeError):
                probe("/media/notes.txt")

    def test_timeout_raises(self):
        with patch('video_processing.run_interruptible_subprocess',
                   side_effect=subprocess.TimeoutExpired(["ffprobe"], 30)):
            with self.assertRaises(ProbeError):
                probe("/media/slow.mkv")

    def test_shutdown_raises(self):
        with patch('video_processing.run_interruptible_subprocess', return_value=None):
            with self.assertRaises(ProbeError):
                probe("/media/ep1.mkv")

    def test_missing_ffprobe_raises(self):
        with patch('video_processing._get_ffprobe_path_from_config', return_value=None):
            with self.assertRaises(ProbeError):
                probe("/media/ep1.mkv")

    def test_no_video_streams_is_not_an_error(self):
        payload = {"streams": [{"codec_type": "audio", "duration": "200.0"}]}
        with patch('video_processing.run_interruptible_subprocess', return_value=self.completed(payload=payload)):
            result = probe("/media/song.mp3")
        self.assertFalse(video_processing.has_video_stream(result))


if __name__ == '__main__':
    unittest.main()
