"""Tests for the completion webhook and the webhook test timer."""

import asyncio

import requests
from unittest.mock import patch

from streamrelay.notifier import WebhookTestTimer, notify_completion


class TestNotifyCompletion:

    def test_posts_payload(self):
        with patch("streamrelay.notifier.requests.post") as mock_post:
            notify_completion("123", "vid", webhook_url="https://hooks.example/done")

        mock_post.assert_called_once()
        assert mock_post.call_args.args[0] == "https://hooks.example/done"
        assert mock_post.call_args.kwargs["json"] == {
            "videoId": "vid", "taskId": "123", "status": "completed"
        }

    def test_failure_is_swallowed(self):
        with patch("streamrelay.notifier.requests.post",
                   side_effect=requests.ConnectionError("down")):
            notify_completion("123", "vid", webhook_url="https://hooks.example/done")

    def test_http_error_is_swallowed(self):
        with patch("streamrelay.notifier.requests.post") as mock_post:
            mock_post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
            notify_completion("123", "vid", webhook_url="https://hooks.example/done")

    def test_skipped_without_video_id(self):
        with patch("streamrelay.notifier.requests.post") as mock_post:
            notify_completion("123", None, webhook_url="https://hooks.example/done")

        mock_post.assert_not_called()

    def test_skipped_without_url(self):
        with patch("streamrelay.notifier.WEBHOOK_URL", ""), \
                patch("streamrelay.notifier.requests.post") as mock_post:
            notify_completion("123", "vid")

        mock_post.assert_not_called()


class TestWebhookTestTimer:

    def test_start_is_idempotent_and_stop_cancels(self):
        async def scenario():
            timer = WebhookTestTimer(interval=3600, webhook_url="https://hooks.example/test")
            with patch("streamrelay.notifier.requests.post") as mock_post:
                assert await timer.start() is True
                assert await timer.start() is False
                await asyncio.sleep(0.2)
                assert timer.running
                await timer.stop()
            assert not timer.running
            return mock_post

        mock_post = asyncio.run(scenario())
        mock_post.assert_called_once()
        payload = mock_post.call_args.kwargs["json"]
        assert payload["status"] == "completed"
        assert payload["videoId"] == "test-1"

    def test_delivery_errors_do_not_stop_timer(self):
        async def scenario():
            timer = WebhookTestTimer(interval=0.01, webhook_url="https://hooks.example/test")
            with patch("streamrelay.notifier.requests.post",
                       side_effect=requests.ConnectionError("down")):
                await timer.start()
                await asyncio.sleep(0.1)
                running = timer.running
                await timer.stop()
            return running, timer.sent

        running, sent = asyncio.run(scenario())
        assert running
        assert sent >= 2
