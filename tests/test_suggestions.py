import unittest
from dataclasses import replace

from engine.models import Directory, Severity, Validator, ValidatorStatistics
from engine.suggestions import classify, performance_tier
from engine.summary import summarize


def make_stats(performance: float, commission: float, address: str = "5Aaaa", total_era_points: int = 0) -> ValidatorStatistics:
    validator = Validator(address=address, identity="Alpha", commission=commission)
    return replace(ValidatorStatistics.zeroed(validator), performance=performance, total_era_points=total_era_points)


class TestClassify(unittest.TestCase):

    def test_is_deterministic(self):
        stats = make_stats(performance=63.0, commission=30.0)
        self.assertEqual(classify(stats), classify(stats))

    def test_good_performance_high_commission(self):
        advisories = classify(make_stats(performance=80.0, commission=25.0))
        self.assertEqual([a.severity for a in advisories], [Severity.INFO, Severity.WARNING])
        self.assertEqual(advisories[0].title, "Good Performance")
        self.assertEqual(advisories[1].title, "High Commission")
        self.assertIn("25.00%", advisories[1].description)

    def test_low_performance_low_commission(self):
        advisories = classify(make_stats(performance=40.0, commission=5.0))
        self.assertEqual(len(advisories), 1)
        self.assertEqual(advisories[0].severity, Severity.CRITICAL)
        self.assertEqual(advisories[0].title, "Low Performance")

    def test_thresholds(self):
        self.assertEqual(classify(make_stats(50.0, 0.0))[0].severity, Severity.WARNING)
        self.assertEqual(classify(make_stats(69.9, 0.0))[0].severity, Severity.WARNING)
        self.assertEqual(classify(make_stats(70.0, 0.0))[0].severity, Severity.INFO)
        # exactly 20% is not high
        self.assertEqual(len(classify(make_stats(90.0, 20.0))), 1)
        self.assertEqual(len(classify(make_stats(90.0, 20.01))), 2)

    def test_to_dict(self):
        advisory = classify(make_stats(10.0, 0.0))[0]
        self.assertEqual(advisory.to_dict()["severity"], "critical")

    def test_performance_tier(self):
        self.assertEqual(performance_tier(95.0), "excellent")
        self.assertEqual(performance_tier(90.0), "excellent")
        self.assertEqual(performance_tier(75.0), "good")
        self.assertEqual(performance_tier(50.0), "average")
        self.assertEqual(performance_tier(49.9), "poor")


class TestSummarize(unittest.TestCase):

    def setUp(self):
        self.validators = tuple(
            Validator(address=f"5V{i}", identity=f"V{i}", commission=float(i), active=i % 2 == 0, rank=i + 1)
            for i in range(8)
        )
        self.directory = Directory(network="local", era=9, validators=self.validators, average_commission=3.5, active_count=4)

    def test_summary_over_computed_validators(self):
        stats = {
            "5V0": make_stats(90.0, 0.0, "5V0", 900),
            "5V1": make_stats(60.0, 1.0, "5V1", 600),
            "5V2": make_stats(30.0, 2.0, "5V2", 300),
        }
        summary = summarize(self.directory, stats)

        self.assertEqual(summary.total_validators, 8)
        self.assertEqual(summary.active_validators, 4)
        self.assertEqual(summary.average_commission, 3.5)
        self.assertAlmostEqual(summary.average_performance, 60.0)
        self.assertAlmostEqual(summary.average_era_points, 600.0)
        self.assertEqual(summary.total_era_points, 1800)
        self.assertEqual([s.address for s in summary.top_performers], ["5V0", "5V1", "5V2"])

    def test_top_performers_keep_rank_order_on_ties(self):
        stats = {f"5V{i}": make_stats(50.0 if i < 6 else 99.0, 0.0, f"5V{i}") for i in range(8)}
        summary = summarize(self.directory, stats, top=5)
        self.assertEqual([s.address for s in summary.top_performers], ["5V6", "5V7", "5V0", "5V1", "5V2"])

    def test_nothing_computed(self):
        summary = summarize(self.directory, {})
        self.assertEqual(summary.average_performance, 0.0)
        self.assertEqual(summary.top_performers, ())


if __name__ == "__main__":
    unittest.main()
