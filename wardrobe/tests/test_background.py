import unittest
from unittest.mock import MagicMock, patch

import requests

from wardrobe.background import PassthroughBackgroundRemover, ReplicateBackgroundRemover
from wardrobe.errors import ProcessingError


def _json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


class ReplicateBackgroundRemoverTests(unittest.TestCase):
    def setUp(self):
        self.remover = ReplicateBackgroundRemover(
            api_token="token",
            model_version="cjwbw/rembg:abc123",
            timeout_seconds=120,
        )
        self.remover._session = MagicMock()
        self.remover._downloads = MagicMock()
        self.download = MagicMock()
        self.download.iter_content.return_value = [b"ab", b"", b"cd"]
        self.remover._downloads.get.return_value.__enter__.return_value = self.download

    def test_credentials_are_not_sent_with_downloads(self):
        remover = ReplicateBackgroundRemover(api_token="secret", model_version="m:v")
        self.assertEqual(remover._session.headers["Authorization"], "Bearer secret")
        self.assertNotIn("Authorization", remover._downloads.headers)

    def test_immediate_success_streams_output(self):
        self.remover._session.post.return_value = _json_response(
            {"status": "succeeded", "output": "https://cdn.example.com/out.png"}
        )

        chunks = list(self.remover.remove("https://www.nike.com/a.jpg"))

        self.assertEqual(chunks, [b"ab", b"cd"])
        _, kwargs = self.remover._session.post.call_args
        self.assertEqual(
            kwargs["json"], {"version": "abc123", "input": {"image": "https://www.nike.com/a.jpg"}}
        )
        self.assertEqual(
            self.remover._downloads.get.call_args[0][0], "https://cdn.example.com/out.png"
        )

    @patch("wardrobe.background.time.sleep")
    def test_polls_until_terminal(self, sleep):
        self.remover._session.post.return_value = _json_response(
            {"status": "starting", "urls": {"get": "https://api.example.com/p/1"}}
        )
        self.remover._session.get.side_effect = [
            _json_response({"status": "processing", "urls": {"get": "https://api.example.com/p/1"}}),
            _json_response({"status": "succeeded", "output": ["https://cdn.example.com/out.png"]}),
        ]

        chunks = list(self.remover.remove("https://zara.com/a.jpg"))

        self.assertEqual(chunks, [b"ab", b"cd"])
        self.assertEqual(self.remover._session.get.call_count, 2)
        self.assertEqual(sleep.call_count, 2)

    def test_failed_prediction(self):
        self.remover._session.post.return_value = _json_response(
            {"status": "failed", "error": "bad input"}
        )
        with self.assertRaises(ProcessingError) as ctx:
            self.remover.remove("https://zara.com/a.jpg")
        self.assertIn("bad input", str(ctx.exception))
        self.remover._downloads.get.assert_not_called()

    def test_missing_output(self):
        self.remover._session.post.return_value = _json_response({"status": "succeeded"})
        with self.assertRaises(ProcessingError):
            self.remover.remove("https://zara.com/a.jpg")

    def test_request_error(self):
        self.remover._session.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ProcessingError):
            self.remover.remove("https://zara.com/a.jpg")

    @patch("wardrobe.background.time.sleep")
    @patch("wardrobe.background.time.monotonic", side_effect=[0.0, 0.0, 0.0, 500.0])
    def test_timeout(self, monotonic, sleep):
        self.remover._session.post.return_value = _json_response(
            {"status": "starting", "urls": {"get": "https://api.example.com/p/1"}}
        )
        with self.assertRaises(ProcessingError) as ctx:
            self.remover.remove("https://zara.com/a.jpg")
        self.assertIn("timed out", str(ctx.exception))
        self.remover._session.get.assert_not_called()

    def test_download_error_surfaces_while_streaming(self):
        self.remover._session.post.return_value = _json_response(
            {"status": "succeeded", "output": "https://cdn.example.com/out.png"}
        )
        self.download.raise_for_status.side_effect = requests.HTTPError("404")

        chunks = self.remover.remove("https://zara.com/a.jpg")

        with self.assertRaises(ProcessingError):
            list(chunks)


class PassthroughBackgroundRemoverTests(unittest.TestCase):
    def test_streams_source(self):
        remover = PassthroughBackgroundRemover()
        remover._session = MagicMock()
        response = MagicMock()
        response.iter_content.return_value = [b"raw"]
        remover._session.get.return_value.__enter__.return_value = response

        self.assertEqual(list(remover.remove("https://zara.com/a.jpg")), [b"raw"])
        remover._session.get.assert_called_once_with(
            "https://zara.com/a.jpg", stream=True, timeout=30.0
        )


if __name__ == "__main__":
    unittest.main()
