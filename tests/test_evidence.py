import unittest
from datetime import datetime, timezone

from chatprofile.evidence import Evidence, EvidenceCounter


def evidence(i):
    return Evidence(f"c{i}", "Chat", f"message {i}", datetime(2024, 1, 1, tzinfo=timezone.utc))


class EvidenceCounterTests(unittest.TestCase):
    def test_ranked_by_count_with_first_seen_tie_order(self):
        counter = EvidenceCounter()
        counter.add("b")
        counter.add("a", 2)
        counter.add("c")
        self.assertEqual([(p.key, p.count) for p in counter.ranked()], [("a", 2), ("b", 1), ("c", 1)])
        self.assertEqual(counter.total(), 4)

    def test_min_count_and_limit(self):
        counter = EvidenceCounter()
        for key, n in (("x", 3), ("y", 1), ("z", 2)):
            counter.add(key, n)
        self.assertEqual([p.key for p in counter.ranked(min_count=2)], ["x", "z"])
        self.assertEqual([p.key for p in counter.ranked(limit=1)], ["x"])

    def test_evidence_is_capped(self):
        counter = EvidenceCounter(evidence_limit=2)
        for i in range(5):
            counter.add("k", evidence=evidence(i))
        (phrase,) = counter.ranked()
        self.assertEqual(phrase.count, 5)
        self.assertEqual([e.conversation_id for e in phrase.evidence], ["c0", "c1"])

    def test_non_positive_occurrences_are_ignored(self):
        counter = EvidenceCounter()
        counter.add("k", 0, evidence(0))
        self.assertEqual(counter.ranked(), [])
        self.assertEqual(counter.total(), 0)


if __name__ == "__main__":
    unittest.main()
