"""
Test suite for binning, risk scoring, selection and encoding.
"""

import pytest
import pandas as pd
import numpy as np

from lbw_risk.pipeline.exceptions import (
    InvalidFieldError, MissingDependencyError, UnmappedCategoryError,
)
from lbw_risk.pipeline.feature_engineering import (
    BEHAVIORAL_FALLBACK, BEHAVIORAL_SCORES, CategoricalBinner, CategoricalEncoder, FeatureSelector,
    RiskScorer, create_preparation_pipeline, create_preprocessing_pipeline, habit_level, risk_tier,
)
from lbw_risk.pipeline.preprocessing import DataScaler, MissingValueHandler
from lbw_risk.pipeline.schema import (
    GESTATIONAL_FLAGS, MODELING_COLUMNS, ORGANIC_FLAGS, TARGET,
)


def binned(frame):
    return CategoricalBinner().fit_transform(MissingValueHandler().fit_transform(frame))


def scored(frame):
    return RiskScorer().fit_transform(binned(frame))


class TestCategoricalBinner:
    """Test fixed-cutpoint binning."""

    @pytest.mark.parametrize("schooling, label", [
        (0, 'low'), (9, 'low'), (10, 'medium'), (15, 'medium'), (16, 'high'),
    ])
    def test_schooling_bins(self, record_factory, frame_factory, schooling, label):
        result = binned(frame_factory(record_factory(maternal_schooling=float(schooling))))
        assert result.loc[0, 'maternal_schooling_cat'] == label

    @pytest.mark.parametrize("pregnancies, label", [
        (1, 'first-pregnancy'), (2, 'second-to-third'), (3, 'second-to-third'), (4, 'four-plus'),
    ])
    def test_pregnancy_bins(self, record_factory, frame_factory, pregnancies, label):
        result = binned(frame_factory(record_factory(total_pregnancies=float(pregnancies))))
        assert result.loc[0, 'total_pregnancies_cat'] == label

    @pytest.mark.parametrize("cigarettes, label", [
        (0, 'non-smoker'), (1, 'light-smoker'), (20, 'light-smoker'), (21, 'heavy-smoker'),
    ])
    def test_smoking_bins(self, record_factory, frame_factory, cigarettes, label):
        record = record_factory(smokes=float(cigarettes > 0), cigarettes_per_day=float(cigarettes))
        result = binned(frame_factory(record))
        assert result.loc[0, 'smoking_cat'] == label

    def test_count_and_code_bins(self, record_factory, frame_factory):
        df = frame_factory(
            record_factory(prenatal_start_month=3.0, prior_abortions=0.0, living_children=0.0,
                           alcohol_per_week=0.0, last_birth_outcome=1, marital_status=1),
            record_factory(prenatal_start_month=5.0, prior_abortions=2.0, living_children=2.0,
                           drinks=1.0, alcohol_per_week=2.0, last_birth_outcome=2, marital_status=2),
            record_factory(prenatal_start_month=6.0, prior_abortions=3.0, living_children=3.0,
                           drinks=1.0, alcohol_per_week=3.0, last_birth_outcome=9, marital_status=1),
        )
        result = binned(df)

        assert result['prenatal_start_cat'].tolist() == ['early', 'medium', 'late']
        assert result['prior_abortions_cat'].tolist() == ['none', 'one-to-two', 'three-plus']
        assert result['living_children_cat'].tolist() == ['zero', 'one-to-two', 'three-plus']
        assert result['alcohol_cat'].tolist() == ['non-drinker', 'light-drinker', 'heavy-drinker']
        assert result['last_birth_outcome_cat'].tolist() == ['live', 'fetal-death', 'not-applicable']
        assert result['marital_status_cat'].tolist() == ['married', 'unmarried', 'married']

    def test_source_columns_retained(self, record_factory, frame_factory):
        result = binned(frame_factory(record_factory()))
        assert 'maternal_schooling' in result.columns
        assert 'maternal_schooling_cat' in result.columns

    def test_labels_are_plain_categories(self, record_factory, frame_factory):
        result = binned(frame_factory(record_factory()))
        assert result['maternal_schooling_cat'].dtype == object

    def test_rebinning_is_a_no_op(self, raw_perinatal_data):
        once = binned(raw_perinatal_data)
        twice = CategoricalBinner().fit_transform(once)

        pd.testing.assert_frame_equal(once, twice)

    def test_unexpected_code_raises(self, record_factory, frame_factory):
        df = frame_factory(record_factory(), record_factory(last_birth_outcome=3))

        with pytest.raises(UnmappedCategoryError) as exc_info:
            binned(df)
        assert exc_info.value.field == 'last_birth_outcome'
        assert exc_info.value.record_index == 1

    def test_zero_pregnancies_raise(self, record_factory, frame_factory):
        with pytest.raises(UnmappedCategoryError):
            binned(frame_factory(record_factory(total_pregnancies=0.0)))

    def test_negative_count_raises(self, record_factory, frame_factory):
        with pytest.raises(UnmappedCategoryError):
            binned(frame_factory(record_factory(prior_abortions=-1.0)))

    def test_unresolved_input_raises(self, record_factory, frame_factory):
        df = frame_factory(record_factory(living_children=None))

        with pytest.raises(MissingDependencyError) as exc_info:
            CategoricalBinner().fit_transform(df)
        assert exc_info.value.field == 'living_children'

    def test_absent_source_raises(self, record_factory, frame_factory):
        df = frame_factory(record_factory()).drop(columns=['marital_status'])

        with pytest.raises(InvalidFieldError):
            CategoricalBinner().fit_transform(df)

    def test_non_numeric_source_raises(self, record_factory, frame_factory):
        df = frame_factory(record_factory())
        df['maternal_schooling'] = 'twelve'

        with pytest.raises(InvalidFieldError):
            CategoricalBinner().fit_transform(df)


class TestRiskScorer:
    """Test the four KPI scores and their tiers."""

    def test_diabetes_only(self, record_factory, frame_factory):
        result = scored(frame_factory(record_factory(diabetes=1)))

        assert result.loc[0, 'kpi1_organic'] == 2
        assert result.loc[0, 'kpi1_organic_tier'] == 'moderate'

    def test_organic_score_is_monotone(self, record_factory, frame_factory):
        flags = list(ORGANIC_FLAGS)
        records = []
        for n in range(len(flags) + 1):
            records.append(record_factory(**{flag: 1 for flag in flags[:n]}))
        scores = scored(frame_factory(*records))['kpi1_organic']

        assert scores.is_monotonic_increasing
        assert scores.iloc[-1] == sum(ORGANIC_FLAGS.values())

    def test_eclampsia_only(self, record_factory, frame_factory):
        result = scored(frame_factory(record_factory(eclampsia=1)))

        assert result.loc[0, 'kpi2_gestational'] == 2
        assert result.loc[0, 'kpi2_gestational_tier'] == 'high'

    def test_incompetent_cervix_only(self, record_factory, frame_factory):
        result = scored(frame_factory(record_factory(incompetent_cervix=1)))

        assert result.loc[0, 'kpi2_gestational'] == 1
        assert result.loc[0, 'kpi2_gestational_tier'] == 'moderate'

    @pytest.mark.parametrize("cigarettes, alcohol, expected", [
        (0, 0, 0),
        (10, 0, 1),
        (25, 0, 2),
        (0, 1, 1),
        (0, 5, 2),
        (10, 1, 2),
        (25, 2, 3),
        (25, 5, 4),
    ])
    def test_behavioral_table(self, record_factory, frame_factory, cigarettes, alcohol, expected):
        record = record_factory(smokes=float(cigarettes > 0), cigarettes_per_day=float(cigarettes),
                                drinks=float(alcohol > 0), alcohol_per_week=float(alcohol))
        result = scored(frame_factory(record))
        assert result.loc[0, 'kpi3_behavioral'] == expected

    def test_twenty_cigarettes_is_light(self, record_factory, frame_factory):
        """20/day is a light smoker, so light smoking with heavy drinking falls back to 1."""
        record = record_factory(smokes=1.0, cigarettes_per_day=20.0, drinks=1.0, alcohol_per_week=3.0)
        result = scored(frame_factory(record))

        assert result.loc[0, 'smoking_cat'] == 'light-smoker'
        assert result.loc[0, 'alcohol_cat'] == 'heavy-drinker'
        assert result.loc[0, 'kpi3_behavioral'] == BEHAVIORAL_SCORES[('light', 'heavy')] == 1
        assert result.loc[0, 'kpi3_behavioral_tier'] == 'moderate'

    def test_twenty_one_cigarettes_is_heavy(self, record_factory, frame_factory):
        record = record_factory(smokes=1.0, cigarettes_per_day=21.0, drinks=1.0, alcohol_per_week=2.0)
        result = scored(frame_factory(record))

        assert result.loc[0, 'kpi3_behavioral'] == 3
        assert result.loc[0, 'kpi3_behavioral_tier'] == 'high'

    def test_smoking_flag_without_cigarettes_counts_as_light(self, record_factory, frame_factory):
        record = record_factory(smokes=1.0, cigarettes_per_day=0.0)
        result = scored(frame_factory(record))
        assert result.loc[0, 'kpi3_behavioral'] == 1

    def test_imputed_smoking_flag_scores_fallback(self, record_factory, frame_factory):
        """A smoking flag imputed to the flag median of 0.5 is outside the table."""
        df = frame_factory(
            record_factory(smokes=1.0, cigarettes_per_day=5.0),
            record_factory(smokes=0.0, cigarettes_per_day=0.0),
            record_factory(smokes=None, cigarettes_per_day=5.0),
        )
        result = scored(df)

        assert result.loc[2, 'smokes'] == pytest.approx(0.5)
        assert result.loc[2, 'kpi3_behavioral'] == BEHAVIORAL_FALLBACK == 1
        assert result.loc[2, 'kpi3_behavioral_tier'] == 'moderate'

    def test_non_binary_habit_flag_scores_fallback(self, record_factory, frame_factory):
        df = binned(frame_factory(record_factory(drinks=1.0, alcohol_per_week=5.0)))
        df.loc[0, 'drinks'] = 2

        result = RiskScorer().fit_transform(df)
        assert result.loc[0, 'kpi3_behavioral'] == BEHAVIORAL_FALLBACK

    def test_habit_level(self):
        flags = pd.Series([0, 1, 0.5, 1])
        amounts = pd.Series(['non-smoker', 'light-smoker', 'light-smoker', 'heavy-smoker'])

        levels = habit_level(flags, amounts, 'heavy-smoker')
        assert levels.tolist() == ['none', 'light', 'unmatched', 'heavy']

    def test_prenatal_score(self, record_factory, frame_factory):
        record = record_factory(maternal_schooling=5.0, marital_status=2,
                                prenatal_start_month=7.0, ultrasound=0)
        result = scored(frame_factory(record))

        assert result.loc[0, 'kpi4_prenatal'] == 2 + 1 + 2 + 1
        assert result.loc[0, 'kpi4_prenatal_tier'] == 'high'

    def test_end_to_end_record(self, record_factory, frame_factory):
        record = record_factory(
            maternal_schooling=12.0, total_pregnancies=1.0, prenatal_start_month=2.0,
            prior_abortions=0.0, last_birth_outcome=9, marital_status=1,
            living_children=None, cigarettes_per_day=None, smokes=0.0,
            drinks=None, alcohol_per_week=0.0, diabetes=0, eclampsia=0, ultrasound=1,
        )
        resolved = MissingValueHandler().fit_transform(frame_factory(record))
        assert resolved.loc[0, 'living_children'] == 0
        assert resolved.loc[0, 'cigarettes_per_day'] == 0
        assert resolved.loc[0, 'drinks'] == 0

        result = RiskScorer().fit_transform(CategoricalBinner().fit_transform(resolved))
        row = result.loc[0]
        assert row['maternal_schooling_cat'] == 'medium'
        assert row['total_pregnancies_cat'] == 'first-pregnancy'
        assert row['prenatal_start_cat'] == 'early'
        assert row['prior_abortions_cat'] == 'none'
        assert row['living_children_cat'] == 'zero'
        assert (row['kpi1_organic'], row['kpi1_organic_tier']) == (0, 'low')
        assert (row['kpi2_gestational'], row['kpi2_gestational_tier']) == (0, 'low')
        assert (row['kpi3_behavioral'], row['kpi3_behavioral_tier']) == (0, 'low')
        assert (row['kpi4_prenatal'], row['kpi4_prenatal_tier']) == (1, 'moderate')

    def test_scoring_before_binning_raises(self, record_factory, frame_factory):
        resolved = MissingValueHandler().fit_transform(frame_factory(record_factory()))

        with pytest.raises(MissingDependencyError) as exc_info:
            RiskScorer().fit_transform(resolved)
        assert exc_info.value.field == 'maternal_schooling_cat'

    def test_absent_flag_raises(self, record_factory, frame_factory):
        df = binned(frame_factory(record_factory())).drop(columns=['herpes'])

        with pytest.raises(InvalidFieldError):
            RiskScorer().fit_transform(df)

    def test_non_binary_flag_raises(self, record_factory, frame_factory):
        with pytest.raises(UnmappedCategoryError) as exc_info:
            scored(frame_factory(record_factory(), record_factory(anemia=2)))
        assert exc_info.value.field == 'anemia'
        assert exc_info.value.record_index == 1

    def test_missing_flag_raises(self, record_factory, frame_factory):
        df = binned(frame_factory(record_factory()))
        df.loc[0, 'ultrasound'] = np.nan

        with pytest.raises(MissingDependencyError):
            RiskScorer().fit_transform(df)

    def test_risk_tier_bounds(self):
        tiers = risk_tier(pd.Series([0, 1, 2, 3, 9]), (0, 2))
        assert tiers.tolist() == ['low', 'moderate', 'moderate', 'high', 'high']


class TestFeatureSelector:
    """Test the modeling projection."""

    def test_projects_modeling_columns(self, raw_perinatal_data):
        result = create_preparation_pipeline().fit_transform(raw_perinatal_data)

        assert list(result.columns) == MODELING_COLUMNS
        assert len(result) == len(raw_perinatal_data)
        assert not result.isna().any().any()

    def test_unscored_data_raises(self, record_factory, frame_factory):
        with pytest.raises(MissingDependencyError):
            FeatureSelector().fit_transform(binned(frame_factory(record_factory())))

    def test_custom_columns(self, record_factory, frame_factory):
        result = FeatureSelector(columns=[TARGET, 'kpi1_organic']).fit_transform(
            scored(frame_factory(record_factory())))
        assert result.columns.tolist() == [TARGET, 'kpi1_organic']


class TestCategoricalEncoder:
    """Test one-hot encoding with fit-time categories."""

    def test_encoding_drop_first(self):
        train = pd.DataFrame({'tier': ['low', 'high', 'moderate'], 'age': [20, 30, 40]})
        encoder = CategoricalEncoder(drop_first=True).fit(train)
        result = encoder.transform(train)

        # Sorted categories: high, low, moderate; 'high' is the reference level
        assert result.columns.tolist() == ['age', 'tier_low', 'tier_moderate']
        assert result['tier_low'].tolist() == [1, 0, 0]
        assert encoder.get_feature_names_out() == ['tier_low', 'tier_moderate']

    def test_unknown_category_ignored(self):
        encoder = CategoricalEncoder(drop_first=False).fit(pd.DataFrame({'tier': ['low', 'high']}))
        result = encoder.transform(pd.DataFrame({'tier': ['moderate']}))

        assert result.loc[0].tolist() == [0, 0]

    def test_unknown_category_error(self):
        encoder = CategoricalEncoder(handle_unknown='error').fit(pd.DataFrame({'tier': ['low', 'high']}))

        with pytest.raises(UnmappedCategoryError):
            encoder.transform(pd.DataFrame({'tier': ['moderate']}))


class TestPipelineFactories:
    """Test pipeline construction from config."""

    def test_preparation_pipeline_order(self):
        pipeline = create_preparation_pipeline()
        assert [name for name, _ in pipeline.steps] == ['resolve', 'bin', 'score', 'select']

    def test_preprocessing_steps(self, sample_config):
        steps = create_preprocessing_pipeline(sample_config)

        assert isinstance(steps[0], DataScaler)
        assert isinstance(steps[1], CategoricalEncoder)

    def test_scaling_can_be_disabled(self):
        steps = create_preprocessing_pipeline({'feature_engineering': {'scaling': {'enabled': False}}})

        assert len(steps) == 1
        assert isinstance(steps[0], CategoricalEncoder)

    def test_flags_and_weights(self):
        assert len(ORGANIC_FLAGS) == 9
        assert len(GESTATIONAL_FLAGS) == 7
        assert ORGANIC_FLAGS['diabetes'] == ORGANIC_FLAGS['renal_disease'] == 2
        assert GESTATIONAL_FLAGS['eclampsia'] == 2
