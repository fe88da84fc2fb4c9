import pytest

from conftest import competitor
from serp_intel.analyzers.aggregator import Aggregator, round_half_up
from serp_intel.models.schemas import AnalysisSummary, EntityData


@pytest.fixture
def aggregator():
    return Aggregator()


def entity(name, salience=0.5, type_="OTHER"):
    return EntityData(name=name, type=type_, salience=salience, mentions=1)


class TestRoundHalfUp:

    def test_halves_round_up(self):
        assert round_half_up(150.5) == 151
        assert round_half_up(2.5) == 3
        assert round_half_up(0.125, 2) == 0.13

    def test_negative_halves_round_towards_positive(self):
        assert round_half_up(-2.5) == -2
        assert round_half_up(-0.126, 2) == -0.13


class TestSummarize:

    def test_empty_input_is_all_zero(self, aggregator):
        summary = aggregator.summarize([])
        assert summary == AnalysisSummary()

    def test_zero_word_pages_excluded_from_average(self, aggregator):
        pages = [competitor(1, word_count=100), competitor(2, word_count=0), competitor(3, word_count=200)]
        summary = aggregator.summarize(pages)
        assert summary.avg_word_count == 150
        assert summary.total_pages == 3

    def test_word_count_average_rounds_half_up(self, aggregator):
        pages = [competitor(1, word_count=100), competitor(2, word_count=201)]
        assert aggregator.summarize(pages).avg_word_count == 151

    def test_title_length_counts_missing_titles_as_zero(self, aggregator):
        pages = [competitor(1, title="x" * 60), competitor(2, title=None), competitor(3, title="y" * 30)]
        assert aggregator.summarize(pages).avg_title_length == 30

    def test_sentiment_average_ignores_missing_scores(self, aggregator):
        pages = [
            competitor(1, sentiment=0.2),
            competitor(2, sentiment=None),
            competitor(3, sentiment=0.05),
        ]
        assert aggregator.summarize(pages).avg_sentiment == 0.13

    def test_zero_sentiment_is_a_real_score(self, aggregator):
        pages = [competitor(1, sentiment=0.0), competitor(2, sentiment=0.5)]
        assert aggregator.summarize(pages).avg_sentiment == 0.25

    def test_no_sentiment_scores_average_zero(self, aggregator):
        pages = [competitor(1), competitor(2)]
        assert aggregator.summarize(pages).avg_sentiment == 0.0


class TestCommonEntities:

    def test_threshold_is_thirty_percent_of_pages(self, aggregator):
        # ten pages: ceil(0.3 * 10) = 3 occurrences required
        pages = []
        for rank in range(1, 11):
            ents = []
            if rank <= 3:
                ents.append(entity("Breville", 0.6))
            if rank <= 2:
                ents.append(entity("Keurig", 0.9))
            pages.append(competitor(rank, entities=ents))

        common = aggregator.common_entities(pages)

        assert [e.name for e in common] == ["breville"]
        assert common[0].mentions == 3
        assert common[0].salience == pytest.approx(0.6)

    def test_grouping_is_case_insensitive_with_mean_salience(self, aggregator):
        pages = [
            competitor(1, entities=[entity("Coffee", 0.8)]),
            competitor(2, entities=[entity("COFFEE", 0.4)]),
            competitor(3, entities=[entity("coffee", 0.3)]),
        ]
        common = aggregator.common_entities(pages)
        assert len(common) == 1
        assert common[0].name == "coffee"
        assert common[0].salience == pytest.approx(0.5)
        assert common[0].mentions == 3

    def test_sorted_by_salience_and_capped_at_ten(self, aggregator):
        names = [f"entity{i}" for i in range(12)]
        ents = [entity(name, salience=i / 20) for i, name in enumerate(names)]
        pages = [competitor(1, entities=ents)]

        common = aggregator.common_entities(pages)

        assert len(common) == 10
        assert common[0].name == "entity11"
        assert [e.salience for e in common] == sorted((e.salience for e in common), reverse=True)

    def test_empty_input(self, aggregator):
        assert aggregator.common_entities([]) == []


class TestRecommend:

    def test_full_recommendation_set_in_order(self, aggregator):
        pages = [
            competitor(rank, word_count=1500, title="t" * 55, sentiment=0.4,
                       entities=[entity("Breville", 0.7)], structured=True)
            for rank in range(1, 4)
        ]

        recommendations = aggregator.recommend(pages, "best coffee makers")

        assert recommendations == [
            "Target content length around 1500 words to match top-ranking competitors.",
            "Maintain title length around 55 characters for optimal performance.",
            "Include high-value entities in your content: breville. "
            "These appear frequently in top-ranking pages.",
            "Maintain positive content tone. Top competitors show consistently "
            "positive sentiment (avg: 0.4).",
            "Implement structured data markup. 3 out of 3 top competitors use structured data.",
        ]

    def test_title_outside_optimal_range(self, aggregator):
        pages = [competitor(1, title="short")]
        recommendations = aggregator.recommend(pages, "kw")
        assert (
            "Optimize title length to 50-60 characters. Current competitor average is 5 characters."
            in recommendations
        )

    def test_negative_tone(self, aggregator):
        pages = [competitor(1, sentiment=-0.5), competitor(2, sentiment=-0.3)]
        recommendations = aggregator.recommend(pages, "kw")
        assert (
            "Consider adopting a more positive content tone to match successful competitors."
            in recommendations
        )

    def test_neutral_tone_has_no_tone_advice(self, aggregator):
        pages = [competitor(1, sentiment=0.1)]
        recommendations = aggregator.recommend(pages, "kw")
        assert not any("tone" in r for r in recommendations)

    def test_structured_data_requires_strict_majority(self, aggregator):
        five_of_nine = [competitor(r, structured=r <= 5) for r in range(1, 10)]
        four_of_nine = [competitor(r, structured=r <= 4) for r in range(1, 10)]

        assert (
            "Implement structured data markup. 5 out of 9 top competitors use structured data."
            in aggregator.recommend(five_of_nine, "kw")
        )
        assert not any("structured data" in r for r in aggregator.recommend(four_of_nine, "kw"))

    def test_entities_limited_to_five_names(self, aggregator):
        ents = [entity(f"e{i}", salience=(10 - i) / 10) for i in range(7)]
        recommendations = aggregator.recommend([competitor(1, entities=ents)], "kw")
        entity_line = next(r for r in recommendations if r.startswith("Include"))
        assert "e0, e1, e2, e3, e4." in entity_line
        assert "e5" not in entity_line

    def test_no_competitors_no_recommendations(self, aggregator):
        assert aggregator.recommend([], "kw") == []

    def test_uses_given_summary(self, aggregator):
        summary = AnalysisSummary(avg_word_count=999, avg_title_length=0, total_pages=1)
        recommendations = aggregator.recommend([competitor(1)], "kw", summary=summary)
        assert recommendations == [
            "Target content length around 999 words to match top-ranking competitors.",
        ]
