import json
import unittest
from unittest.mock import patch

from mentionloop.interactions.completion import CompletionClient, ModelConfig
from mentionloop.interactions.models import Decision


class _Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = text

    def json(self):
        return self._payload


def _choice(content):
    return {"choices": [{"message": {"content": content}}], "usage": {"prompt_tokens": 10, "total_tokens": 12}}


class CompletionClientHttpTests(unittest.TestCase):
    @patch("mentionloop.interactions.completion.requests.post")
    def test_should_respond_parses_answer(self, mock_post):
        mock_post.return_value = _Resp(payload=_choice("[RESPOND]"))
        client = CompletionClient(api_key="sk-test", base_url="https://llm.test/v1/")

        decision = client.should_respond("prompt", [], ModelConfig(model="m", temperature=0.0))

        self.assertEqual(decision, Decision.RESPOND)
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://llm.test/v1/chat/completions")
        body = json.loads(kwargs["data"])
        self.assertEqual(body["model"], "m")
        self.assertEqual(body["messages"], [{"role": "user", "content": "prompt"}])
        self.assertNotIn("stop", body)

    @patch("mentionloop.interactions.completion.requests.post")
    def test_complete_passes_stop_and_max_tokens(self, mock_post):
        mock_post.return_value = _Resp(payload=_choice("hello"))
        client = CompletionClient(api_key="sk-test")

        out = client.complete("prompt", ["\n\n"], ModelConfig(model="m", max_tokens=64))

        self.assertEqual(out, "hello")
        body = json.loads(mock_post.call_args.kwargs["data"])
        self.assertEqual(body["stop"], ["\n\n"])
        self.assertEqual(body["max_tokens"], 64)

    @patch("mentionloop.interactions.completion.requests.post")
    def test_http_error_raises(self, mock_post):
        mock_post.return_value = _Resp(status_code=500, text="oops")
        with self.assertRaises(RuntimeError):
            CompletionClient(api_key="sk-test").complete("p", [], ModelConfig(model="m"))

    @patch("mentionloop.interactions.completion.requests.post")
    def test_malformed_payload_raises(self, mock_post):
        mock_post.return_value = _Resp(payload={"choices": []})
        with self.assertRaises(RuntimeError):
            CompletionClient(api_key="sk-test").complete("p", [], ModelConfig(model="m"))

    def test_missing_key_raises_before_request(self):
        with patch("mentionloop.interactions.completion.requests.post") as mock_post:
            with self.assertRaises(RuntimeError):
                CompletionClient(api_key=None).complete("p", [], ModelConfig(model="m"))
            mock_post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
