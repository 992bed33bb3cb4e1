import unittest
from datetime import date, datetime, timedelta, timezone

from chatprofile.export_parser import parse_export_data
from chatprofile.statistics import (
    compute_activity_pattern,
    compute_basic_stats,
    compute_word_frequency,
    estimate_tokens,
    longest_streak,
    message_frame,
    rank_conversations,
)

from export_fixtures import make_conversation, raw_conversation, ts, user_messages

UTC = timezone.utc


def _split(text):
    return text.split()


class LongestStreakTests(unittest.TestCase):
    def test_gap_breaks_the_run(self):
        self.assertEqual(longest_streak(["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-05"]), 3)

    def test_unsorted_duplicates_and_dates(self):
        days = [date(2024, 3, 2), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 2)]
        self.assertEqual(longest_streak(days), 3)

    def test_empty(self):
        self.assertEqual(longest_streak([]), 0)


class BasicStatsTests(unittest.TestCase):
    def test_two_conversations_one_day_apart(self):
        export = [
            raw_conversation(
                "a",
                [("user", "hello", ts(2024, 1, 1, 10)), ("assistant", "hi!", ts(2024, 1, 1, 10, 1))],
            ),
            raw_conversation(
                "b",
                [("user", "again", ts(2024, 1, 2, 10)), ("assistant", "welcome", ts(2024, 1, 2, 10, 1))],
            ),
        ]
        conversations = parse_export_data(export).conversations
        stats = compute_basic_stats(conversations, UTC)
        self.assertEqual(stats.total_conversations, 2)
        self.assertEqual(stats.total_messages, 4)
        self.assertEqual(stats.user_messages, 2)
        self.assertEqual(stats.assistant_messages, 2)
        self.assertEqual(stats.active_days, 2)
        self.assertEqual(stats.longest_streak, 2)
        self.assertEqual(stats.date_range.start, datetime(2024, 1, 1, 10, tzinfo=UTC))
        self.assertEqual(stats.date_range.end, datetime(2024, 1, 2, 10, 1, tzinfo=UTC))

    def test_token_estimate_rounds_half_up(self):
        self.assertEqual(estimate_tokens(10), 3)
        self.assertEqual(estimate_tokens(9), 2)
        conv = make_conversation("a", [("user", "x" * 10, None)])
        self.assertEqual(compute_basic_stats([conv], UTC).estimated_tokens, 3)

    def test_messages_without_time_use_conversation_time(self):
        conv = make_conversation(
            "a",
            [("user", "x", None), ("assistant", "y", datetime(2024, 1, 3, tzinfo=UTC))],
            create_time=datetime(2024, 1, 2, tzinfo=UTC),
        )
        stats = compute_basic_stats([conv], UTC)
        self.assertEqual(stats.active_days, 2)
        self.assertEqual(stats.longest_streak, 2)

    def test_empty_input(self):
        stats = compute_basic_stats([], UTC)
        self.assertEqual(stats.total_messages, 0)
        self.assertIsNone(stats.date_range)

    def test_dates_follow_timezone(self):
        tokyo = timezone(timedelta(hours=9))
        conv = make_conversation("a", [("user", "late", datetime(2024, 1, 1, 23, 30, tzinfo=UTC))])
        df = message_frame([conv], tokyo)
        self.assertEqual(df["date"].tolist(), ["2024-01-02"])
        self.assertEqual(df["hour"].tolist(), [8])


class ActivityPatternTests(unittest.TestCase):
    def test_sunday_is_day_zero(self):
        sunday = datetime(2024, 1, 7, 10, tzinfo=UTC)
        conv = make_conversation("a", [("user", "x", sunday), ("assistant", "y", sunday)])
        pattern = compute_activity_pattern([conv], UTC)
        self.assertEqual(len(pattern.hourly_matrix), 7)
        self.assertTrue(all(len(row) == 24 for row in pattern.hourly_matrix))
        self.assertEqual(pattern.hourly_matrix[0][10], 2)
        self.assertEqual(pattern.weekday_counts, [2, 0, 0, 0, 0, 0, 0])

    def test_monthly_and_yearly_buckets(self):
        a = make_conversation(
            "a",
            [
                ("user", "x", datetime(2023, 12, 31, 9, tzinfo=UTC)),
                ("user", "y", datetime(2024, 1, 5, 9, tzinfo=UTC)),
            ],
        )
        b = make_conversation("b", [("user", "z", datetime(2024, 1, 5, 12, tzinfo=UTC))])
        pattern = compute_activity_pattern([a, b], UTC)
        self.assertEqual([(m.month, m.count) for m in pattern.monthly], [("2023-12", 1), ("2024-01", 2)])
        self.assertEqual([y.year for y in pattern.yearly], [2024, 2023])
        latest = pattern.yearly[0]
        self.assertEqual(latest.daily_counts, {"2024-01-05": 2})
        self.assertEqual(latest.daily_conversations, {"2024-01-05": ["a", "b"]})
        self.assertEqual(sum(sum(row) for row in pattern.hourly_matrix), 3)

    def test_empty_pattern_still_has_full_matrix(self):
        pattern = compute_activity_pattern([], UTC)
        self.assertEqual(len(pattern.hourly_matrix), 7)
        self.assertEqual(pattern.weekday_counts, [0] * 7)
        self.assertEqual(pattern.yearly, [])


class WordFrequencyTests(unittest.TestCase):
    def test_filters_and_counts(self):
        conv = user_messages(
            [
                "Python python the 42 x !! rocks",
                "python is fun",
            ]
        )
        words = compute_word_frequency([conv], _split)
        by_word = {w.key: w for w in words}
        self.assertEqual(words[0].key, "python")
        self.assertEqual(by_word["python"].count, 3)
        self.assertEqual(len(by_word["python"].evidence), 2)
        for dropped in ("the", "42", "x", "!!", "is"):
            self.assertNotIn(dropped, by_word)
        self.assertIn("rocks", by_word)

    def test_only_user_messages(self):
        conv = make_conversation("a", [("assistant", "banana banana", None), ("user", "apple", None)])
        self.assertEqual([w.key for w in compute_word_frequency([conv], _split)], ["apple"])

    def test_evidence_is_capped(self):
        conv = user_messages(["kiwi"] * 25)
        (kiwi,) = compute_word_frequency([conv], _split)
        self.assertEqual(kiwi.count, 25)
        self.assertEqual(len(kiwi.evidence), 10)

    def test_limit(self):
        conv = user_messages([" ".join(f"word{i:02d}" for i in range(40))])
        self.assertEqual(len(compute_word_frequency([conv], _split)), 30)


class RankConversationsTests(unittest.TestCase):
    def test_most_active_and_earliest(self):
        convs = [
            make_conversation(
                f"c{i}",
                [("user", "x", None)] * (i + 1),
                create_time=datetime(2024, 1, 10 - i, tzinfo=UTC),
            )
            for i in range(7)
        ]
        most_active, earliest = rank_conversations(convs)
        self.assertEqual([c.id for c in most_active], ["c6", "c5", "c4", "c3", "c2"])
        self.assertEqual([c.id for c in earliest], ["c6", "c5", "c4", "c3", "c2"])
        self.assertEqual(most_active[0].message_count, 7)
        self.assertEqual(most_active[0].user_message_count, 7)


if __name__ == "__main__":
    unittest.main()
