import threading
import unittest
from datetime import datetime, timedelta, timezone

from spark_signal.daemon.events import EventBus, MessageStored
from spark_signal.parsing.base import ParsedMessage
from spark_signal.store.conversations import ConversationStore

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _msg(contact, seconds, body="", from_self=False):
    return ParsedMessage(contact, from_self, body or f"at {seconds}", T0 + timedelta(seconds=seconds))


class ConversationStoreTests(unittest.TestCase):
    def test_append_keeps_arrival_order_per_contact(self):
        store = ConversationStore()
        later = _msg("+1111", 10)
        earlier = _msg("+1111", 5)
        store.append("+1111", later)
        store.append("+1111", earlier)
        self.assertEqual(store.messages_for("+1111"), [later, earlier])

    def test_unknown_contact_is_empty(self):
        store = ConversationStore()
        self.assertEqual(store.messages_for("+9999"), [])
        self.assertNotIn("+9999", store)

    def test_all_messages_sorted_by_timestamp(self):
        store = ConversationStore()
        t1 = _msg("+1111", 1)
        t2 = _msg("+3333", 30)
        t3 = _msg("+1111", 20)
        for msg in (t1, t2, t3):
            store.append(msg.contact, msg)
        self.assertEqual(store.messages_for(None), [t1, t3, t2])

    def test_equal_timestamps_keep_insertion_order(self):
        store = ConversationStore()
        a = _msg("+3333", 0, body="a")
        b = _msg("+1111", 0, body="b")
        c = _msg("+3333", 0, body="c")
        for msg in (a, b, c):
            store.append(msg.contact, msg)
        self.assertEqual([m.body for m in store.messages_for()], ["a", "b", "c"])

    def test_duplicates_are_stored_twice(self):
        store = ConversationStore()
        msg = _msg("+1111", 1)
        store.append("+1111", msg)
        store.append("+1111", msg)
        self.assertEqual(len(store.messages_for("+1111")), 2)
        self.assertEqual(len(store), 2)

    def test_record_sent_bypasses_parser(self):
        store = ConversationStore()
        sent = store.record_sent("+3333", "on my way", clock=lambda: T0)
        self.assertEqual(store.messages_for("+3333"), [sent])
        self.assertTrue(sent.from_self)
        self.assertEqual(sent.timestamp, T0)

    def test_contacts_in_first_seen_order(self):
        store = ConversationStore()
        for contact in ("+3333", "+1111", "+3333"):
            store.append(contact, _msg(contact, 0))
        self.assertEqual(store.contacts(), ["+3333", "+1111"])

    def test_returned_lists_are_copies(self):
        store = ConversationStore()
        store.append("+1111", _msg("+1111", 0))
        store.messages_for("+1111").clear()
        self.assertEqual(len(store.messages_for("+1111")), 1)

    def test_append_publishes_message_stored(self):
        bus = EventBus()
        seen = []
        bus.subscribe(MessageStored, lambda event: seen.append(event.message))
        store = ConversationStore(bus)
        msg = _msg("+1111", 0)
        store.append("+1111", msg)
        self.assertEqual(seen, [msg])

    def test_concurrent_appends_are_all_kept(self):
        store = ConversationStore()

        def writer(contact):
            for i in range(200):
                store.append(contact, _msg(contact, i))

        threads = [threading.Thread(target=writer, args=(f"+{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(store), 800)
        self.assertEqual(len(store.messages_for()), 800)


if __name__ == "__main__":
    unittest.main()
