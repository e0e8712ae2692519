import json
import unittest

from ops_broker.wire import done_event, error_event, extract_text_delta, format_sse, text_delta_event


class WireEventTests(unittest.TestCase):
    def test_text_delta_envelope(self) -> None:
        self.assertEqual(
            {
                "type": "stream_event",
                "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "a.txt"}},
            },
            text_delta_event("a.txt"),
        )

    def test_extract_text_delta_round_trips_envelope(self) -> None:
        self.assertEqual("frag", extract_text_delta(text_delta_event("frag")))

    def test_extract_text_delta_ignores_other_shapes(self) -> None:
        self.assertIsNone(extract_text_delta({"type": "system", "subtype": "init"}))
        self.assertIsNone(extract_text_delta({"type": "stream_event", "event": {"type": "message_start"}}))
        self.assertIsNone(
            extract_text_delta(
                {
                    "type": "stream_event",
                    "event": {"type": "content_block_delta", "delta": {"type": "input_json_delta"}},
                }
            )
        )
        self.assertIsNone(extract_text_delta({"type": "stream_event", "event": "garbage"}))

    def test_format_sse(self) -> None:
        frame = format_sse(done_event())
        self.assertTrue(frame.startswith("data: "))
        self.assertTrue(frame.endswith("\n\n"))
        self.assertEqual({"type": "done"}, json.loads(frame[len("data: "):]))

    def test_error_event(self) -> None:
        self.assertEqual({"type": "error", "error": "boom"}, error_event("boom"))


if __name__ == "__main__":
    unittest.main()
