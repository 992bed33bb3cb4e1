import asyncio
import unittest

from chatprofile.orchestrator import (
    AnalysisOrchestrator,
    AnalysisResults,
    AnalysisStep,
    RunState,
    build_digest,
)

from export_fixtures import make_conversation
from fake_client import FakeClient, FakeClock

FIVE_KEYS = ["big_five", "mbti", "thinking_style", "communication", "writing_style"]

STRUCTURED = {
    "big_five": {
        "scores": {"openness": 80, "conscientiousness": 60, "extraversion": 30, "agreeableness": 50, "neuroticism": 20},
        "descriptions": {},
        "dominant_trait": "curiosity",
        "summary": "Curious and methodical.",
    },
    "mbti": {"type": " intj ", "axis_scores": {}, "type_title": "The Architect", "description": "", "chatgpt_style": ""},
    "thinking_style": {"scores": {}, "style_name": "Systems thinker", "description": "", "strengths": [], "characteristics": []},
    "communication": {"patterns": {}, "descriptions": {}, "strengths": [], "improvements": [], "best_practices": []},
    "topic_classification": {"categories": [], "main_interest": "code", "summary": ""},
    "writing_style": {"formality": "casual", "average_length": "short", "tone": "", "characteristics": [], "summary": ""},
    "personality_summary": {"title": "Builder", "emoji": "x", "tagline": "", "description": "", "strengths": [],
                            "growth_points": [], "recommendations": []},
    "axis_labels": {"x_positive": "A", "x_negative": "B", "y_positive": "C", "y_negative": "D"},
}


def sample_conversations(n=3):
    return [
        make_conversation(f"c{i}", [("user", f"question {i}", None), ("assistant", "answer", None)], title=f"topic {i}")
        for i in range(n)
    ]


def returning(value, before=None):
    async def handler(digest, results):
        if before is not None:
            before()
        return value

    return handler


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, percent, label):
        self.events.append((percent, label))


class RunAllAnalysesTests(unittest.IsolatedAsyncioTestCase):
    async def test_global_deadline_returns_partial_results(self):
        clock = FakeClock()

        def advance(seconds):
            def tick():
                clock.now += seconds

            return tick

        steps = [
            AnalysisStep("big_five", "One", 20, returning({"n": 1}, advance(100))),
            AnalysisStep("mbti", "Two", 20, returning({"n": 2}, advance(250))),
            AnalysisStep("thinking_style", "Three", 20, returning({"n": 3})),
            AnalysisStep("communication", "Four", 20, returning({"n": 4})),
            AnalysisStep("writing_style", "Five", 20, returning({"n": 5})),
        ]
        orchestrator = AnalysisOrchestrator(FakeClient(), steps=steps, clock=clock)
        progress = Recorder()
        with self.assertLogs("chatprofile.orchestrator", level="WARNING"):
            results = await orchestrator.run_all_analyses(sample_conversations(), progress)

        self.assertEqual(results.completed(), ["big_five", "mbti"])
        self.assertIsNone(results.thinking_style)
        self.assertEqual(orchestrator.state, RunState.TIMED_OUT)
        self.assertEqual(progress.events[-1], (40, "Time limit reached, returning partial results"))
        self.assertNotIn(100, [p for p, _ in progress.events])

    async def test_slow_step_times_out_alone(self):
        async def slow(digest, results):
            await asyncio.sleep(5)
            return {"never": True}

        steps = [
            AnalysisStep(key, key, 20, slow if key == "mbti" else returning({"key": key}))
            for key in FIVE_KEYS
        ]
        orchestrator = AnalysisOrchestrator(FakeClient(), steps=steps, step_timeout=0.05)
        progress = Recorder()
        with self.assertLogs("chatprofile.orchestrator", level="WARNING") as cm:
            results = await orchestrator.run_all_analyses(sample_conversations(), progress)

        self.assertIsNone(results.mbti)
        self.assertEqual(len(results.completed()), 4)
        self.assertEqual(orchestrator.state, RunState.COMPLETED)
        self.assertEqual(progress.events[-1], (100, "Analysis complete"))
        self.assertIn((40, "mbti done"), progress.events)
        self.assertTrue(any("Step mbti timed out" in line for line in cm.output))

    async def test_failing_step_does_not_stop_the_run(self):
        async def broken(digest, results):
            raise RuntimeError("boom")

        steps = [
            AnalysisStep(key, key, 20, broken if key == "big_five" else returning({"key": key}))
            for key in FIVE_KEYS
        ]
        orchestrator = AnalysisOrchestrator(FakeClient(), steps=steps)
        with self.assertLogs("chatprofile.orchestrator", level="ERROR"):
            results = await orchestrator.run_all_analyses(sample_conversations())
        self.assertIsNone(results.big_five)
        self.assertEqual(results.completed(), FIVE_KEYS[1:])

    async def test_none_result_leaves_field_unset(self):
        steps = [AnalysisStep(key, key, 20, returning(None if key == "mbti" else {"ok": 1})) for key in FIVE_KEYS]
        progress = Recorder()
        results = await AnalysisOrchestrator(FakeClient(), steps=steps).run_all_analyses([], progress)
        self.assertIsNone(results.mbti)
        self.assertEqual(progress.events[-1], (100, "Analysis complete"))

    async def test_abort_during_first_step(self):
        client = FakeClient()
        holder = {}
        steps = [
            AnalysisStep(
                key,
                key,
                20,
                returning({"key": key}, (lambda: holder["orchestrator"].abort()) if key == "big_five" else None),
            )
            for key in FIVE_KEYS
        ]
        orchestrator = AnalysisOrchestrator(client, steps=steps)
        holder["orchestrator"] = orchestrator
        progress = Recorder()
        results = await orchestrator.run_all_analyses(sample_conversations(), progress)

        self.assertEqual(orchestrator.state, RunState.ABORTED)
        self.assertTrue(orchestrator.aborted)
        self.assertEqual(client.abort_calls, 1)
        self.assertEqual(results.completed(), ["big_five"])
        self.assertEqual(progress.events[-1], (20, "big_five done"))

    async def test_default_pipeline_feeds_earlier_results_into_summary(self):
        client = FakeClient(STRUCTURED)
        orchestrator = AnalysisOrchestrator(client)
        progress = Recorder()
        results = await orchestrator.run_all_analyses(sample_conversations(3), progress)

        self.assertEqual(results.completed(), list(AnalysisResults.field_names()))
        self.assertEqual(results.mbti["type"], "INTJ")
        self.assertEqual(results.big_five["dominant_trait"], "openness")
        self.assertEqual(len(results.intelligence_map.points), 3)

        summary_prompt = dict(client.schema_calls)["personality_summary"]
        self.assertIn("Big Five dominant trait: openness", summary_prompt)
        self.assertIn("MBTI: INTJ The Architect", summary_prompt)
        self.assertIn("Thinking style: Systems thinker", summary_prompt)
        self.assertIn("[Conversation 1] topic 0", summary_prompt)

        percents = [p for p, _ in progress.events]
        self.assertEqual(percents, sorted(percents))
        self.assertEqual(progress.events[-1], (100, "Analysis complete"))
        self.assertEqual(orchestrator.state, RunState.COMPLETED)


class OrchestratorSetupTests(unittest.TestCase):
    def test_requires_client(self):
        with self.assertRaises(ValueError):
            AnalysisOrchestrator(None)

    def test_weights_must_sum_to_100(self):
        steps = [AnalysisStep("big_five", "x", 50, returning({})), AnalysisStep("mbti", "y", 40, returning({}))]
        with self.assertRaises(ValueError):
            AnalysisOrchestrator(FakeClient(), steps=steps)

    def test_unknown_step_key(self):
        with self.assertRaises(ValueError):
            AnalysisOrchestrator(FakeClient(), steps=[AnalysisStep("horoscope", "x", 100, returning({}))])

    def test_default_weights(self):
        steps = AnalysisOrchestrator(FakeClient()).steps
        self.assertEqual(sum(s.weight for s in steps), 100)
        self.assertEqual([s.key for s in steps], list(AnalysisResults.field_names()))


class AnalysisResultsTests(unittest.TestCase):
    def test_merge(self):
        results = AnalysisResults()
        results.merge("mbti", {"type": "ENFP"})
        results.merge("mbti", None)
        self.assertEqual(results.mbti, {"type": "ENFP"})
        with self.assertRaises(KeyError):
            results.merge("horoscope", {})


class BuildDigestTests(unittest.TestCase):
    def test_truncation_limits(self):
        long_conv = make_conversation(
            "long",
            [("user", "a" * 300, None), ("assistant", "skip me", None), ("user", "b" * 300, None), ("user", "c" * 300, None)],
            title="Long one",
        )
        digest = build_digest([long_conv] + sample_conversations(120))
        self.assertEqual(len(digest.conversations), 100)
        self.assertEqual(digest.text.count("\n\n---\n\n"), 99)

        first_block = digest.text.split("\n\n---\n\n")[0]
        header, date_line, label, body = first_block.split("\n", 3)
        self.assertEqual(header, "[Conversation 1] Long one")
        self.assertTrue(date_line.startswith("Date: 2024-01-01"))
        self.assertEqual(label, "User messages:")
        self.assertEqual(len(body), 500)
        self.assertTrue(body.startswith("a" * 200 + "\n" + "b" * 200))
        self.assertNotIn("skip me", digest.text)

    def test_empty(self):
        digest = build_digest([])
        self.assertEqual(digest.text, "")
        self.assertEqual(digest.conversations, ())


if __name__ == "__main__":
    unittest.main()
