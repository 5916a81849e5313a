import unittest
from datetime import datetime, timedelta, timezone

from spark_signal.parsing.envelope import EnvelopeParser, ParserState

ME = "+2222"


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def _parse(text, me=ME):
    return EnvelopeParser(me, clock=FakeClock()).parse_text(text)


class EnvelopeParserTests(unittest.TestCase):
    def test_incoming_message(self):
        messages = _parse('Envelope from: "A" +1111 (device: 1) to +2222\nBody: hello\n\n')
        self.assertEqual(len(messages), 1)
        msg = messages[0]
        self.assertEqual(msg.contact, "+1111")
        self.assertFalse(msg.from_self)
        self.assertEqual(msg.body, "hello")

    def test_sync_sent_message_goes_to_recipient(self):
        messages = _parse('Received sync sent message\nTo: "B" +3333\nBody: hi there\n\n')
        self.assertEqual(len(messages), 1)
        msg = messages[0]
        self.assertEqual(msg.contact, "+3333")
        self.assertTrue(msg.from_self)
        self.assertEqual(msg.body, "hi there")

    def test_realistic_indented_sync_block(self):
        text = (
            "Envelope from: “Me” +2222 (device: 2) to +2222\n"
            "Timestamp: 1700000000000 (2023-11-14T22:13:20.000Z)\n"
            "Received sync sent message\n"
            "  To: “Bob” +3333\n"
            "  Timestamp: 1700000000000 (2023-11-14T22:13:20.000Z)\n"
            "  Body: see you soon\n"
            "\n"
        )
        [msg] = _parse(text)
        self.assertEqual((msg.contact, msg.from_self, msg.body), ("+3333", True, "see you soon"))

    def test_two_bodies_share_context(self):
        text = 'Envelope from: "A" +1111 (device: 1) to +2222\nBody: one\nBody: two\n\n'
        first, second = _parse(text)
        self.assertEqual((first.contact, first.from_self), ("+1111", False))
        self.assertEqual((second.contact, second.from_self), ("+1111", False))
        self.assertEqual([first.body, second.body], ["one", "two"])

    def test_blank_line_resets_block(self):
        parser = EnvelopeParser(ME)
        parser.feed_line("Received sync sent message")
        parser.feed_line('To: "B" +3333')
        parser.feed_line("")
        self.assertEqual(parser.state, ParserState())

        msg = parser.feed_line("Body: orphan")
        self.assertEqual(msg.contact, ME)
        self.assertFalse(msg.from_self)

    def test_envelope_without_numbers_keeps_previous_context(self):
        parser = EnvelopeParser(ME)
        parser.feed_line('Envelope from: "A" +1111 (device: 1) to +2222')
        parser.feed_line('Envelope from: "Unknown" (device: 1)')
        self.assertEqual(parser.state.current_sender, "+1111")
        self.assertEqual(parser.state.current_recipient, "+2222")

    def test_envelope_does_not_touch_sync_flag(self):
        parser = EnvelopeParser(ME)
        parser.feed_line("Received sync sent message")
        parser.feed_line('Envelope from: "A" +1111 (device: 1)')
        self.assertTrue(parser.state.in_sync_sent_block)

    def test_to_line_ignores_non_number_last_token(self):
        parser = EnvelopeParser(ME)
        parser.feed_line('To: "Group name"')
        self.assertIsNone(parser.state.current_recipient)

    def test_body_without_context_falls_back_to_self(self):
        [msg] = _parse("Body: note to self\n")
        self.assertEqual(msg.contact, ME)
        self.assertFalse(msg.from_self)

    def test_message_from_self_without_sync_marker(self):
        [msg] = _parse('Envelope from: "Me" +2222 (device: 2) to +4444\nBody: hey\n\n')
        self.assertEqual(msg.contact, "+4444")
        self.assertTrue(msg.from_self)

    def test_sync_block_to_self_falls_back_to_sender(self):
        text = (
            'Envelope from: "Other device" +5555 (device: 2)\n'
            "Received sync sent message\n"
            'To: "Me" +2222\n'
            "Body: reminder\n"
        )
        [msg] = _parse(text)
        self.assertEqual(msg.contact, "+5555")
        self.assertTrue(msg.from_self)

    def test_sync_block_without_any_number_uses_self(self):
        [msg] = _parse("Received sync sent message\nBody: lonely\n")
        self.assertEqual(msg.contact, ME)
        self.assertTrue(msg.from_self)

    def test_body_text_is_everything_after_first_marker(self):
        [msg] = _parse('Envelope from: "A" +1111\n  Body:   says Body: twice  \n')
        self.assertEqual(msg.body, "says Body: twice")

    def test_unrecognised_lines_are_passed_to_output_log(self):
        seen = []
        parser = EnvelopeParser(ME, on_unparsed=seen.append)
        messages = list(parser.feed_lines([
            'Envelope from: "A" +1111 (device: 1) to +2222',
            "Timestamp: 1700000000000",
            "Attachments:",
            "Body: hi",
        ]))
        self.assertEqual(seen, ["Timestamp: 1700000000000", "Attachments:"])
        self.assertEqual(len(messages), 1)

    def test_garbage_never_raises(self):
        text = "\x00\x01\nTo:\nEnvelope from:\nBody:\n+++\n\n\n"
        messages = _parse(text)
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].body, "")

    def test_timestamps_come_from_clock(self):
        clock = FakeClock()
        parser = EnvelopeParser(ME, clock=clock)
        first, second = parser.parse_text("Body: a\nBody: b\n")
        self.assertLess(first.timestamp, second.timestamp)
        self.assertEqual(second.timestamp, clock.now)


if __name__ == "__main__":
    unittest.main()
